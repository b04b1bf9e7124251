import logging

from selenium.common.exceptions import StaleElementReferenceException
from selenium.webdriver.remote.webelement import WebElement

from errors import ElementDetachedError, ElementNotVisibleError, PollTimeoutError
from polling import wait_for_condition

IS_CONNECTED_SCRIPT = "return arguments[0].isConnected;"

# Any non-zero overlap between the element box and the viewport counts as visible.
INTERSECTS_VIEWPORT_SCRIPT = """
const rect = arguments[0].getBoundingClientRect();
const width = window.innerWidth || document.documentElement.clientWidth;
const height = window.innerHeight || document.documentElement.clientHeight;
const overlapX = Math.min(rect.right, width) - Math.max(rect.left, 0);
const overlapY = Math.min(rect.bottom, height) - Math.max(rect.top, 0);
return overlapX > 0 && overlapY > 0;
"""

SCROLL_INTO_VIEW_SCRIPT = (
    "arguments[0].scrollIntoView({block: 'center', inline: 'center', behavior: 'smooth'});"
)


def is_connected(driver, element: WebElement) -> bool:
    try:
        return bool(driver.execute_script(IS_CONNECTED_SCRIPT, element))
    except StaleElementReferenceException:
        return False


def is_intersecting_viewport(driver, element: WebElement) -> bool:
    try:
        return bool(driver.execute_script(INTERSECTS_VIEWPORT_SCRIPT, element))
    except StaleElementReferenceException:
        return False


def wait_for_connected(driver, element: WebElement, timeout: float) -> None:
    try:
        wait_for_condition(
            driver,
            lambda: is_connected(driver, element),
            timeout,
            description="element attachment",
        )
    except PollTimeoutError as exc:
        raise ElementDetachedError(
            f"Element was not attached to the document within {timeout}s"
        ) from exc


def wait_for_in_viewport(driver, element: WebElement, timeout: float) -> None:
    try:
        wait_for_condition(
            driver,
            lambda: is_intersecting_viewport(driver, element),
            timeout,
            description="viewport intersection",
        )
    except PollTimeoutError as exc:
        raise ElementNotVisibleError(
            f"Element did not scroll into the viewport within {timeout}s"
        ) from exc


def scroll_into_view_if_needed(driver, element: WebElement, timeout: float) -> None:
    """Make sure ``element`` is attached and on screen before it is interacted with."""
    wait_for_connected(driver, element, timeout)
    if is_intersecting_viewport(driver, element):
        return
    logging.debug("Element outside viewport; scrolling it into view")
    driver.execute_script(SCROLL_INTO_VIEW_SCRIPT, element)
    wait_for_in_viewport(driver, element, timeout)
