from __future__ import annotations

from selenium import webdriver
from selenium.webdriver.chrome.options import Options

DEFAULT_WINDOW_SIZE = "1920,1080"


def init_driver(
    headless: bool,
    window_size: str = DEFAULT_WINDOW_SIZE,
    extra_args: list[str] | None = None,
    *,
    user_agent: str | None = None,
    locale: str = "uk-UA",
    page_load_timeout: int = 60,
):
    """Create and return a configured Chrome WebDriver instance."""

    opts = Options()
    if headless:
        opts.add_argument("--headless=new")
    if window_size:
        opts.add_argument(f"--window-size={window_size}")
    if user_agent:
        opts.add_argument(f"--user-agent={user_agent}")
    if locale:
        opts.add_argument(f"--lang={locale}")
    # The schedule page sits behind a WAF that flags automation markers
    opts.add_argument("--disable-blink-features=AutomationControlled")
    # Stability flags for headless/server environments
    opts.add_argument("--no-sandbox")
    opts.add_argument("--disable-setuid-sandbox")
    opts.add_argument("--disable-dev-shm-usage")
    opts.add_argument("--disable-gpu")
    opts.add_argument("--no-first-run")
    opts.add_argument("--no-default-browser-check")
    opts.add_argument("--disable-extensions")
    opts.add_argument("--remote-allow-origins=*")
    for a in extra_args or []:
        opts.add_argument(a)
    driver = webdriver.Chrome(options=opts)
    driver.set_page_load_timeout(page_load_timeout)
    return driver


def _should_reinit(err: Exception) -> bool:
    """Return True if a WebDriver error warrants reinitializing the driver.

    Matches common Selenium/urllib3 low-level connection errors and session failures.
    """

    msg = str(err).lower()
    patterns = [
        "connection refused",
        "maxretryerror",
        "httpconnectionpool",
        "newconnectionerror",
        "failed to establish a new connection",
        "invalid session id",
        "chrome not reachable",
        "disconnected: not connected to devtools",
    ]
    return any(p in msg for p in patterns)
