"""In-memory stand-ins for the Selenium driver, DOM nodes, the clock and HTTP."""
import threading
from typing import Dict, List, Optional, Tuple

import requests
from selenium.common.exceptions import NoSuchShadowRootException, StaleElementReferenceException

from form_input import SET_VALUE_SCRIPT
from visibility import INTERSECTS_VIEWPORT_SCRIPT, IS_CONNECTED_SCRIPT, SCROLL_INTO_VIEW_SCRIPT

Locator = Tuple[str, str]


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def monotonic(self) -> float:
        return self.now

    def time(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeSearchContext:
    def __init__(self, children: Optional[Dict[Locator, list]] = None) -> None:
        self.children: Dict[Locator, list] = dict(children or {})
        self.lookups: List[Locator] = []

    def find_elements(self, by: str, value: str) -> list:
        self.lookups.append((by, value))
        return list(self.children.get((by, value), []))


class FakeShadowRoot(FakeSearchContext):
    pass


class FakeElement(FakeSearchContext):
    def __init__(
        self,
        name: str,
        *,
        input_type: str = "text",
        displayed: bool = True,
        connected: bool = True,
        in_viewport: bool = True,
        scrollable: bool = True,
        selected: bool = False,
        stale: bool = False,
        text: str = "",
        children: Optional[Dict[Locator, list]] = None,
        shadow: Optional[FakeShadowRoot] = None,
    ) -> None:
        super().__init__(children)
        self.name = name
        self.input_type = input_type
        self.displayed = displayed
        self.connected = connected
        self.in_viewport = in_viewport
        self.scrollable = scrollable
        self.selected = selected
        self.stale = stale
        self.text = text
        self.shadow = shadow
        self.value = ""
        self.typed: List[str] = []
        self.events: List[str] = []
        self.focused = False
        self.clicks = 0
        self.on_click = None
        self.on_keys = None

    def __repr__(self) -> str:
        return f"FakeElement({self.name!r})"

    @property
    def shadow_root(self) -> FakeShadowRoot:
        if self.shadow is None:
            raise NoSuchShadowRootException("no shadow root")
        return self.shadow

    def is_displayed(self) -> bool:
        if self.stale:
            raise StaleElementReferenceException("stale")
        return self.displayed

    def is_selected(self) -> bool:
        return self.selected

    def get_property(self, name: str):
        if name == "type":
            return self.input_type
        return None

    def send_keys(self, *values: str) -> None:
        if self.on_keys is not None:
            self.on_keys()
        self.typed.extend(values)

    def click(self) -> None:
        self.clicks += 1
        if self.on_click is not None:
            self.on_click()


class FakeDriver(FakeSearchContext):
    def __init__(self, children: Optional[Dict[Locator, list]] = None, *, user_agent: str = "FakeAgent/1.0") -> None:
        super().__init__(children)
        self.user_agent = user_agent
        self.current_url = "about:blank"
        self.page_source = "<html></html>"
        self.window_size: Optional[Tuple[int, int]] = None
        self.visited: List[str] = []
        self.cookies: Dict[str, dict] = {}
        self.scrolled: List[FakeElement] = []
        self.quit_calls = 0
        self._lock = threading.Lock()

    def set_window_size(self, width: int, height: int) -> None:
        self.window_size = (width, height)

    def get(self, url: str) -> None:
        self.visited.append(url)
        self.current_url = url

    def get_cookie(self, name: str) -> Optional[dict]:
        return self.cookies.get(name)

    def execute_script(self, script: str, *args):
        element = args[0] if args else None
        if element is not None and getattr(element, "stale", False):
            raise StaleElementReferenceException("stale")
        if script == IS_CONNECTED_SCRIPT:
            return element.connected
        if script == INTERSECTS_VIEWPORT_SCRIPT:
            return element.in_viewport
        if script == SCROLL_INTO_VIEW_SCRIPT:
            self.scrolled.append(element)
            if element.scrollable:
                element.in_viewport = True
            return None
        if script == SET_VALUE_SCRIPT:
            element.value = args[1]
            element.events.extend(["input", "change"])
            return None
        if "focus()" in script:
            element.focused = True
            return None
        if "navigator.userAgent" in script:
            return self.user_agent
        raise AssertionError(f"Unexpected script: {script}")

    def save_screenshot(self, path: str) -> bool:
        return True

    def quit(self) -> None:
        with self._lock:
            self.quit_calls += 1


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None, *, invalid_json: bool = False) -> None:
        self.status_code = status_code
        self.payload = payload
        self.invalid_json = invalid_json

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self.invalid_json:
            raise ValueError("not json")
        return self.payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)


class FakeHttpSession:
    def __init__(self, response: Optional[FakeResponse] = None, *, error: Optional[Exception] = None) -> None:
        self.response = response or FakeResponse(200, [])
        self.error = error
        self.calls: List[dict] = []

    def _record(self, method: str, url: str, **kwargs) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        if self.error is not None:
            raise self.error
        return self.response

    def get(self, url: str, **kwargs) -> FakeResponse:
        return self._record("GET", url, **kwargs)

    def post(self, url: str, **kwargs) -> FakeResponse:
        return self._record("POST", url, **kwargs)


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: List[Tuple[str, str]] = []

    def notify(self, message: str, agent: str) -> bool:
        self.messages.append((message, agent))
        return True
