import logging
import time
from typing import List, Optional, Sequence, Tuple

from selenium.common.exceptions import (
    InvalidSelectorException,
    NoSuchElementException,
    NoSuchShadowRootException,
    StaleElementReferenceException,
)
from selenium.webdriver.remote.webelement import WebElement

from errors import ElementNotFoundError, PollTimeoutError, SelectorConfigurationError, format_strategy
from polling import wait_for_condition

SelectorStep = Tuple[str, str]
SelectorStrategy = Tuple[SelectorStep, ...]


def search_root_of(element: WebElement):
    """Return the element's shadow root when it has one, otherwise the element itself."""
    try:
        return element.shadow_root
    except NoSuchShadowRootException:
        return element


def _first_match(root, step: SelectorStep, *, visible: bool) -> Optional[WebElement]:
    by, value = step
    try:
        candidates = root.find_elements(by, value)
    except (NoSuchElementException, StaleElementReferenceException):
        return None
    for candidate in candidates:
        if not visible:
            return candidate
        try:
            if candidate.is_displayed():
                return candidate
        except StaleElementReferenceException:
            continue
    return None


class ElementLocator:
    """Resolves a logical target described by alternative selector strategies.

    A strategy is a chain of steps: each step is looked up inside the result of
    the previous one, descending into the shadow root of intermediate hosts. The
    strategies of a target are tried in order and the first one that resolves wins.
    """

    def __init__(self, driver, timeout: float) -> None:
        self.driver = driver
        self.timeout = timeout

    def wait_for_selectors(
        self,
        strategies: Sequence[SelectorStrategy],
        root=None,
        *,
        description: str = "element",
        visible: bool = True,
        timeout: Optional[float] = None,
    ) -> WebElement:
        if not strategies:
            raise SelectorConfigurationError(f"No selector strategies configured for {description}")

        wait_time = self.timeout if timeout is None else timeout
        search_root = self.driver if root is None else root
        started = time.monotonic()
        attempted: List[SelectorStrategy] = []

        for strategy in strategies:
            attempted.append(strategy)
            try:
                element = self.wait_for_selector(strategy, search_root, visible=visible, timeout=wait_time)
            except PollTimeoutError:
                logging.debug("Strategy %s did not resolve %s", format_strategy(strategy), description)
                continue
            except InvalidSelectorException as exc:
                logging.warning("Skipping invalid selector %s for %s: %s", format_strategy(strategy), description, exc.msg)
                continue
            logging.debug("Resolved %s via %s", description, format_strategy(strategy))
            return element

        raise ElementNotFoundError(description, attempted, time.monotonic() - started)

    def wait_for_selector(
        self,
        strategy: SelectorStrategy,
        root,
        *,
        visible: bool = True,
        timeout: Optional[float] = None,
    ) -> WebElement:
        if not strategy:
            raise SelectorConfigurationError("Empty selector strategy")

        wait_time = self.timeout if timeout is None else timeout
        current_root = root
        element: Optional[WebElement] = None
        last_index = len(strategy) - 1

        for index, step in enumerate(strategy):
            scope = current_root
            element = wait_for_condition(
                self.driver,
                lambda: _first_match(scope, step, visible=visible),
                wait_time,
                description=format_strategy(strategy[: index + 1]),
            )
            if index < last_index:
                current_root = search_root_of(element)

        return element
