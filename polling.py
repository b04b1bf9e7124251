import logging
import time
from typing import Callable, Optional, TypeVar

from selenium.common.exceptions import TimeoutException
from selenium.webdriver.support.ui import WebDriverWait

from errors import PollTimeoutError

T = TypeVar("T")

POLL_INTERVAL_SECONDS = 0.1


def wait_for_condition(
    driver,
    predicate: Callable[[], T],
    timeout: float,
    *,
    interval: float = POLL_INTERVAL_SECONDS,
    description: Optional[str] = None,
) -> T:
    """Call ``predicate`` every ``interval`` seconds until it returns something truthy.

    The predicate is always called at least once and never overlaps with itself:
    each call finishes before the next sleep starts. Once the deadline (taken from
    the monotonic clock when polling begins) has passed, ``PollTimeoutError`` is raised.
    Exceptions from the predicate propagate unchanged.
    """
    label = description or getattr(predicate, "__name__", "condition")
    started = time.monotonic()
    wait = WebDriverWait(driver, timeout, poll_frequency=interval, ignored_exceptions=())
    try:
        return wait.until(lambda _driver: predicate(), message=label)
    except TimeoutException as exc:
        elapsed = time.monotonic() - started
        logging.debug("Polling for %s gave up after %.2fs", label, elapsed)
        raise PollTimeoutError(label, elapsed) from exc
