"""In-memory stand-ins for the Playwright objects and engine collaborators used in tests."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Iterable, Optional

from playwright.async_api import Error as PlaywrightError

from cookie_capture.capture import scripts
from cookie_capture.capture.driver import ClickOutcome, ClickResult, FillOutcome, FillResult
from cookie_capture.capture.navigation import NavigationResult
from cookie_capture.capture.orchestrator import CookieCaptureOrchestrator
from cookie_capture.capture.timings import CaptureTimings, StepPolicy
from cookie_capture.models import CapturedCookie


FAST_TIMINGS = CaptureTimings(
    settle_delay_ms=0,
    username=StepPolicy(timeout_ms=10, attempts=3, backoff_ms=0),
    password=StepPolicy(timeout_ms=10),
    next_button=StepPolicy(timeout_ms=10),
    post_click_navigation_ms=10,
    mfa_field=StepPolicy(timeout_ms=10),
    verify_button=StepPolicy(timeout_ms=10),
    mfa_settle_ms=10,
    type_delay_ms=0,
    click_timeout_ms=10,
)

RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"  # base32("12345678901234567890")


def make_cookie(name: str, value: str = "v", *, domain: str = ".example.com", **kw) -> CapturedCookie:
    return CapturedCookie(
        name=name,
        value=value,
        domain=domain,
        path=kw.pop("path", "/"),
        expires=kw.pop("expires", 1_900_000_000.0),
        http_only=kw.pop("http_only", True),
        secure=kw.pop("secure", True),
        same_site=kw.pop("same_site", "None"),
    )


class FakeElement:
    """
    An input-like element. `fail` names the operations that raise a Playwright error.
    `max_length` truncates whatever is written, to simulate a field that rejects input.
    """

    def __init__(
        self,
        name: str = "el",
        *,
        value: str = "",
        visible: bool = True,
        disabled: bool = False,
        fail: Iterable[str] = (),
        max_length: Optional[int] = None,
    ) -> None:
        self.name = name
        self.value = value
        self.visible = visible
        self.disabled = disabled
        self.fail = set(fail)
        self.max_length = max_length
        self.calls: list[str] = []

    def _op(self, op: str) -> None:
        self.calls.append(op)
        if op in self.fail:
            raise PlaywrightError(f"{op} failed")

    def _store(self, value: str) -> None:
        self.value = value if self.max_length is None else value[: self.max_length]

    async def focus(self) -> None:
        self._op("focus")

    async def fill(self, value: str) -> None:
        self._op("fill")
        self._store(value)

    async def type(self, value: str, delay: float = 0) -> None:
        self._op("type")
        self._store(self.value + value)

    async def input_value(self) -> str:
        self._op("input_value")
        return self.value

    async def click(self, timeout: Optional[float] = None) -> None:
        self._op("click")

    async def evaluate(self, script: str, arg: object = None) -> object:
        if script == scripts.ELEMENT_STATE:
            self._op("element_state")
            return {"visible": self.visible, "disabled": self.disabled, "readOnly": False}
        if script == scripts.FORCE_VISIBLE:
            self._op("force_visible")
            self.visible = True
            return None
        if script == scripts.FORCE_ENABLED:
            self._op("force_enabled")
            self.disabled = False
            return None
        if script == scripts.FORCE_FOCUS:
            self._op("force_focus")
            return None
        if script == scripts.FORCE_CLEAR:
            self._op("force_clear")
            self.value = ""
            return None
        if script == scripts.FORCE_VALUE:
            self._op("force_value")
            self._store(str(arg))
            return None
        if script == scripts.READ_VALUE:
            self._op("read_value")
            return self.value
        if script == scripts.PROGRAMMATIC_CLICK:
            self._op("programmatic_click")
            return None
        raise AssertionError(f"unexpected script: {script[:40]!r}")


class FakeHandle:
    def __init__(self, element: Optional[FakeElement]) -> None:
        self.element = element
        self.disposed = False

    def as_element(self) -> Optional[FakeElement]:
        return self.element

    async def dispose(self) -> None:
        self.disposed = True


class FakePage:
    def __init__(
        self,
        elements: Optional[dict[str, FakeElement]] = None,
        *,
        url: str = "about:blank",
        goto_error: Optional[str] = None,
        close_on_goto_error: bool = False,
    ) -> None:
        self.elements = dict(elements or {})
        self.url = url
        self.closed = False
        self.goto_error = goto_error
        self.close_on_goto_error = close_on_goto_error
        self.goto_calls: list[tuple[str, str, float]] = []
        self.selector_calls: list[tuple[str, str, float]] = []
        self.evaluate_handle_args: list[object] = []
        self.handles: list[FakeHandle] = []

    async def goto(self, url: str, wait_until: str = "load", timeout: float = 0) -> None:
        self.goto_calls.append((url, wait_until, timeout))
        if self.goto_error:
            if self.close_on_goto_error:
                self.closed = True
            raise PlaywrightError(self.goto_error)
        self.url = url

    async def wait_for_selector(self, selector: str, state: str = "visible", timeout: float = 0) -> FakeElement:
        self.selector_calls.append((selector, state, timeout))
        xpath = selector[len("xpath="):] if selector.startswith("xpath=") else selector
        element = self.elements.get(xpath)
        if element is None or (state == "visible" and not element.visible):
            raise PlaywrightError(f"Timeout {timeout}ms exceeded waiting for {selector}")
        return element

    async def evaluate_handle(self, script: str, arg: object = None) -> FakeHandle:
        assert script == scripts.RESOLVE_XPATH
        self.evaluate_handle_args.append(arg)
        handle = FakeHandle(self.elements.get(str(arg)))
        self.handles.append(handle)
        return handle

    async def wait_for_function(self, script: str, arg: object = None, timeout: float = 0) -> None:
        assert script == scripts.HREF_CHANGED
        if self.url == arg:
            raise PlaywrightError(f"Timeout {timeout}ms exceeded")

    async def wait_for_load_state(self, state: str = "load", timeout: float = 0) -> None:
        return None

    def is_closed(self) -> bool:
        return self.closed


class RecordingLocator:
    def __init__(self, elements: Optional[dict[str, FakeElement]] = None) -> None:
        self.elements = dict(elements or {})
        self.calls: list[str] = []

    async def locate(self, page, expression: str, *, timeout_ms: int, must_be_visible: bool = True):
        self.calls.append(expression)
        return self.elements.get(expression)


class RecordingDriver:
    def __init__(self, *, mismatch: Iterable[str] = (), unclickable: Iterable[str] = ()) -> None:
        self.mismatch = set(mismatch)
        self.unclickable = set(unclickable)
        self.calls: list[tuple[str, ...]] = []

    def set_value_calls(self) -> list[tuple[str, str]]:
        return [(c[1], c[2]) for c in self.calls if c[0] == "set_value"]

    def touched(self) -> set[str]:
        return {c[1] for c in self.calls}

    async def set_value(self, element: FakeElement, value: str) -> FillResult:
        self.calls.append(("set_value", element.name, value))
        if element.name in self.mismatch:
            return FillResult(FillOutcome.MISMATCH, len(value), 0)
        element.value = value
        return FillResult(FillOutcome.VERIFIED, len(value), len(value))

    async def click(self, element: FakeElement) -> ClickResult:
        self.calls.append(("click", element.name))
        if element.name in self.unclickable:
            return ClickResult(ClickOutcome.FAILED, used_fallback=True)
        return ClickResult(ClickOutcome.CLICKED)


class StubNavigator:
    def __init__(self, *, block: Optional[asyncio.Event] = None, close_page: bool = False) -> None:
        self.block = block
        self.close_page = close_page
        self.navigated: list[str] = []
        self.waits: list[str] = []
        self.settled = 0

    async def navigate(self, page: FakePage, url: str) -> NavigationResult:
        self.navigated.append(url)
        if self.block is not None:
            await self.block.wait()
        page.url = url
        if self.close_page:
            page.closed = True
        return NavigationResult(url=url)

    async def wait_for_navigation(self, page: FakePage, previous_url: str, *, timeout_ms: int) -> NavigationResult:
        self.waits.append(previous_url)
        return NavigationResult(url=page.url)

    async def settle(self, delay_ms: Optional[int] = None) -> None:
        self.settled += 1


class FakeSession:
    def __init__(self, settings, *, page: FakePage, native: list[CapturedCookie], document: str) -> None:
        self.settings = settings
        self.page = page
        self.native = native
        self.document = document
        self.opened = False
        self.closed = False
        self.screenshots: list[Path] = []

    async def __aenter__(self) -> "FakeSession":
        self.opened = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.closed = True

    def is_usable(self) -> bool:
        return not self.page.closed

    async def native_cookies(self) -> list[CapturedCookie]:
        return list(self.native)

    async def document_cookie_string(self) -> str:
        return self.document

    async def screenshot(self, path: Path) -> None:
        self.screenshots.append(path)


class SessionFactory:
    """Callable passed as `session_factory`; records every session it hands out."""

    def __init__(self, *, native: Iterable[CapturedCookie] = (), document: str = "") -> None:
        self.native = list(native)
        self.document = document
        self.sessions: list[FakeSession] = []

    @property
    def launches(self) -> int:
        return len(self.sessions)

    def __call__(self, settings) -> FakeSession:
        session = FakeSession(settings, page=FakePage(), native=self.native, document=self.document)
        self.sessions.append(session)
        return session


def build_orchestrator(
    elements: Optional[dict[str, FakeElement]] = None,
    *,
    factory: Optional[SessionFactory] = None,
    driver: Optional[RecordingDriver] = None,
    navigator: Optional[StubNavigator] = None,
    clock_ms=None,
    step_debug_dir: Optional[str] = None,
) -> tuple[CookieCaptureOrchestrator, RecordingLocator, RecordingDriver, SessionFactory]:
    locator = RecordingLocator(elements)
    driver = driver or RecordingDriver()
    factory = factory or SessionFactory(native=[make_cookie("sid", "abc")])
    orchestrator = CookieCaptureOrchestrator(
        timings=FAST_TIMINGS,
        session_factory=factory,
        locator=locator,
        driver=driver,
        navigator=navigator or StubNavigator(),
        clock_ms=clock_ms,
        step_debug_dir=step_debug_dir,
    )
    return orchestrator, locator, driver, factory
