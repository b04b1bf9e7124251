from typing import Optional, Sequence


class AutomationError(RuntimeError):
    """Base class for failures that abort a checker run."""


class SelectorConfigurationError(AutomationError):
    """Raised when a target is described by an empty set of strategies."""


class PollTimeoutError(AutomationError):
    def __init__(self, description: str, elapsed: float) -> None:
        super().__init__(f"Timed out after {elapsed:.2f}s waiting for {description}")
        self.description = description
        self.elapsed = elapsed


class ElementNotFoundError(AutomationError):
    """None of the alternative selector strategies resolved in time."""

    def __init__(self, description: str, strategies: Sequence, elapsed: float) -> None:
        attempted = " | ".join(format_strategy(strategy) for strategy in strategies)
        super().__init__(
            f"Could not find {description} after {elapsed:.2f}s; attempted strategies: {attempted}"
        )
        self.description = description
        self.strategies = list(strategies)
        self.elapsed = elapsed


class ElementDetachedError(AutomationError):
    """The element was not attached to the live document before the deadline."""


class ElementNotVisibleError(AutomationError):
    """The element never intersected the viewport, even after scrolling."""


class NavigationTimeoutError(AutomationError):
    """A page load or post-login redirect did not finish in time."""


class PortalHttpError(AutomationError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RunCancelledError(AutomationError):
    """The supervisor asked the workflow to stop between two steps."""


def format_strategy(strategy) -> str:
    return " >> ".join(f"{by}={value}" for by, value in strategy)
