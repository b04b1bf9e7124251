import logging
import os

from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from webdriver_manager.chrome import ChromeDriverManager

# Keep webdriver-manager quiet unless user overrides
os.environ.setdefault("WDM_LOG_LEVEL", "0")


def build_chrome_options(*, headless: bool) -> Options:
    options = Options()
    if headless:
        options.add_argument("--headless=new")

    options.add_argument("--no-sandbox")
    options.add_argument("--disable-dev-shm-usage")
    options.add_argument("--disable-gpu")
    options.add_argument("--disable-extensions")
    options.add_argument("--disable-blink-features=AutomationControlled")
    options.add_argument("--log-level=3")

    minimal_browser = os.getenv("MINIMAL_BROWSER", "true").lower() == "true"
    if minimal_browser:
        options.add_argument("--disable-plugins")
        options.add_argument("--no-proxy-server")
        options.add_argument("--disable-background-timer-throttling")
        options.add_argument("--disable-renderer-backgrounding")
        options.add_argument("--disable-backgrounding-occluded-windows")

    prefs = {
        "profile.default_content_setting_values": {
            "plugins": 2,
            "popups": 2,
            "geolocation": 2,
            "notifications": 2,
            "media_stream": 2,
        }
    }
    options.add_experimental_option("prefs", prefs)

    user_agent = os.getenv("CHECKER_USER_AGENT")
    if user_agent:
        options.add_argument(f"--user-agent={user_agent}")
    options.add_experimental_option("excludeSwitches", ["enable-automation"])
    options.add_experimental_option("useAutomationExtension", False)
    return options


def create_chrome_driver(*, headless: bool = True, navigation_timeout: float = 60) -> webdriver.Chrome:
    """Start a Chrome session whose page loads are bounded by ``navigation_timeout``."""
    service = Service(ChromeDriverManager().install())
    try:
        driver = webdriver.Chrome(service=service, options=build_chrome_options(headless=headless))
    except WebDriverException as exc:
        logging.error("Failed to start Chrome driver: %s", exc)
        raise

    driver.set_page_load_timeout(navigation_timeout)
    driver.implicitly_wait(0)

    try:
        browser_version = driver.capabilities.get("browserVersion")
        driver_version = driver.capabilities.get("chrome", {}).get("chromedriverVersion", "")
        logging.info(
            "Active Chrome session: browser=%s | chromedriver=%s",
            browser_version,
            driver_version.split(" ", 1)[0] if driver_version else "unknown",
        )
    except Exception:  # noqa: BLE001
        logging.debug("Unable to read driver capabilities for version logging")

    logging.info("Chrome driver initialized (headless=%s)", headless)
    return driver
