"""Schedule page source backed by a Chrome WebDriver."""
