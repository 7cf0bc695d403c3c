from __future__ import annotations

import asyncio
import enum
import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError, Page

from ..errors import CaptureError, ConfigurationError, ElementNotFound, SessionFailure, ValueMismatch, first_line
from ..logging_config import mask_secret
from ..models import LoginRequest
from ..totp import validate_secret
from .cookies import CookieSet, reconcile
from .driver import FormDriver
from .locator import ElementLocator
from .mfa import MfaResult, MfaStepHandler
from .navigation import NavigationController
from .session import BrowserSession, BrowserSettings
from .timings import CaptureTimings, DEFAULT_TIMINGS


logger = logging.getLogger(__name__)

SessionFactory = Callable[[BrowserSettings], Any]


class FlowState(str, enum.Enum):
    START = "start"
    NAVIGATED = "navigated"
    INTERNAL_USER_PATH = "internal_user_path"
    EXTERNAL_USER_PATH = "external_user_path"
    LOGIN_ABORTED = "login_aborted"
    MFA_HANDLED = "mfa_handled"
    COOKIES_EXTRACTED = "cookies_extracted"
    DONE = "done"


@dataclass
class CaptureResult:
    cookies: CookieSet = field(default_factory=CookieSet)
    trail: list[FlowState] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    mfa: Optional[MfaResult] = None
    final_url: str = ""
    steps: int = 0

    @property
    def state(self) -> FlowState:
        return self.trail[-1] if self.trail else FlowState.START

    def warn(self, message: str) -> None:
        self.warnings.append(message)


class CookieCaptureOrchestrator:
    """
    Drive one login flow in a fresh browser and return the cookies it produced.

    Flow: navigate -> internal (username only) or external (username + password) path -> MFA ->
    settle -> reconcile the cookie jar with document.cookie.

    Only bad input (`ConfigurationError`) and a dead browser (`SessionFailure`) raise. Everything
    else is logged and the capture still returns whatever cookies exist, because even a failed
    login usually leaves useful pre-auth cookies behind.
    """

    def __init__(
        self,
        *,
        browser: Optional[BrowserSettings] = None,
        timings: CaptureTimings = DEFAULT_TIMINGS,
        session_factory: Optional[SessionFactory] = None,
        locator: Optional[ElementLocator] = None,
        driver: Optional[FormDriver] = None,
        navigator: Optional[NavigationController] = None,
        mfa_handler: Optional[MfaStepHandler] = None,
        clock_ms: Optional[Callable[[], int]] = None,
        step_debug_dir: Optional[str] = None,
    ) -> None:
        self.browser = browser or BrowserSettings()
        self.timings = timings
        self.session_factory: SessionFactory = session_factory or BrowserSession
        self.locator = locator or ElementLocator()
        self.driver = driver or FormDriver(timings)
        self.navigator = navigator or NavigationController(timings)
        self.mfa_handler = mfa_handler or MfaStepHandler(
            locator=self.locator,
            driver=self.driver,
            navigator=self.navigator,
            timings=timings,
            clock_ms=clock_ms,
        )
        self.step_debug_dir = Path(step_debug_dir) if step_debug_dir else None

    @staticmethod
    def validate(request: LoginRequest) -> None:
        url = (request.target_url or "").strip()
        if not url:
            raise ConfigurationError("targetUrl is required")
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            raise ConfigurationError(f"targetUrl must be an absolute URL, got {url!r}")

        if request.is_internal_user and not (request.username.strip() and request.username_locator.strip()):
            raise ConfigurationError("internal-user login requires username and usernameLocator")

        mfa = request.active_mfa
        if mfa is not None and mfa.code_kind == "totp-secret":
            validate_secret(mfa.secret_or_code)

    async def capture(self, request: LoginRequest) -> CaptureResult:
        self.validate(request)
        result = CaptureResult(trail=[FlowState.START])
        t0 = time.monotonic()
        logger.info(
            "Starting cookie capture (url=%s internal_user=%s mfa=%s)",
            request.target_url,
            request.is_internal_user,
            request.active_mfa is not None,
        )

        async with self.session_factory(self.browser) as session:
            try:
                await self._login(session, request, result)
            except PlaywrightError as e:
                if not session.is_usable():
                    logger.debug("Session lost during login:\n%s", e)
                    raise SessionFailure(f"browser session became unusable: {first_line(e)}") from e
                result.warn(f"login flow interrupted: {first_line(e)}")
                logger.warning("Login flow interrupted; capturing cookies anyway.", exc_info=True)

            if not session.is_usable():
                raise SessionFailure("browser page closed before cookies could be captured")

            await self.navigator.settle()
            await self._step(session, result, "after_settle")

            native = await session.native_cookies()
            document_string = await session.document_cookie_string()
            result.cookies = reconcile(native, document_string, request.hostname)
            result.trail.append(FlowState.COOKIES_EXTRACTED)
            try:
                result.final_url = session.page.url
            except Exception:
                result.final_url = ""

        result.trail.append(FlowState.DONE)
        logger.info(
            "Cookie capture complete (cookies=%d warnings=%d seconds=%.2f): %s",
            len(result.cookies),
            len(result.warnings),
            time.monotonic() - t0,
            result.cookies.names(),
        )
        return result

    async def _login(self, session: Any, request: LoginRequest, result: CaptureResult) -> None:
        page = session.page
        nav = await self.navigator.navigate(page, request.target_url)
        if nav.warning is not None:
            result.warn(str(nav.warning))
        result.trail.append(FlowState.NAVIGATED)
        await self._step(session, result, "after_navigation")

        try:
            if request.is_internal_user:
                result.trail.append(FlowState.INTERNAL_USER_PATH)
                await self._internal_user_path(session, request, result)
            else:
                result.trail.append(FlowState.EXTERNAL_USER_PATH)
                await self._external_user_path(session, request, result)
        except (ElementNotFound, ValueMismatch) as e:
            # Without credentials in place the rest of the sequence is pointless; keep the cookies.
            logger.error("Login sequence aborted: %s", e)
            result.warn(str(e))
            result.trail.append(FlowState.LOGIN_ABORTED)
            await self._step(session, result, "login_aborted")
            return

        result.mfa = await self.mfa_handler.run(page, request.active_mfa)
        if not result.mfa.ok:
            result.warn(f"MFA: {result.mfa.message}")
        result.trail.append(FlowState.MFA_HANDLED)
        await self._step(session, result, "after_mfa")

    async def _internal_user_path(self, session: Any, request: LoginRequest, result: CaptureResult) -> None:
        # Password fields are never consulted on this path, even when supplied.
        page = session.page
        await self._enter_username(page, request)
        await self._step(session, result, "username_filled")
        await self._click_next(page, request.username_next_locator, step="username next", result=result)

    async def _external_user_path(self, session: Any, request: LoginRequest, result: CaptureResult) -> None:
        page = session.page

        if request.username and request.username_locator:
            await self._enter_username(page, request)
            await self._step(session, result, "username_filled")
            await self._click_next(page, request.username_next_locator, step="username next", result=result)
        else:
            logger.info("No username/usernameLocator supplied; skipping username entry.")

        has_password = bool(request.password)
        has_locator = bool(request.password_locator.strip())
        if not has_password and not has_locator:
            logger.info("No password or passwordLocator supplied; skipping password step (cookie-only capture).")
            return
        if has_password != has_locator:
            missing = "passwordLocator" if has_password else "password"
            logger.warning("Password step skipped: %s is missing.", missing)
            result.warn(f"password step skipped: {missing} is missing")
            return

        await self._enter_password(page, request)
        await self._step(session, result, "password_filled")
        await self._click_next(page, request.password_next_locator, step="password next", result=result)

    async def _enter_username(self, page: Page, request: LoginRequest) -> None:
        policy = self.timings.username
        last_error: CaptureError = ElementNotFound("username", request.username_locator)

        for attempt in range(1, policy.attempts + 1):
            element = await self.locator.locate(page, request.username_locator, timeout_ms=policy.timeout_ms)
            if element is None:
                last_error = ElementNotFound("username", request.username_locator)
            else:
                fill = await self.driver.set_value(element, request.username)
                if fill.verified:
                    logger.info("Username entered (attempt %d/%d)", attempt, policy.attempts)
                    return
                last_error = ValueMismatch("username", expected_len=fill.expected_len, actual_len=fill.actual_len)

            if attempt < policy.attempts:
                logger.warning(
                    "Username entry failed (attempt %d/%d); retrying in %.1fs. (%s)",
                    attempt,
                    policy.attempts,
                    policy.backoff_ms / 1000,
                    last_error,
                )
                await asyncio.sleep(policy.backoff_ms / 1000)

        raise last_error

    async def _enter_password(self, page: Page, request: LoginRequest) -> None:
        policy = self.timings.password
        element = await self.locator.locate(page, request.password_locator, timeout_ms=policy.timeout_ms)
        if element is None:
            raise ElementNotFound("password", request.password_locator)

        clicked = await self.driver.click(element)
        if not clicked.clicked:
            logger.warning("Could not click the password field; typing into it anyway.")

        fill = await self.driver.set_value(element, request.password)
        if not fill.verified:
            raise ValueMismatch("password", expected_len=fill.expected_len, actual_len=fill.actual_len)
        logger.info("Password entered (%s)", mask_secret(request.password))

    async def _click_next(self, page: Page, locator: str, *, step: str, result: CaptureResult) -> None:
        if not (locator or "").strip():
            return

        element = await self.locator.locate(page, locator, timeout_ms=self.timings.next_button.timeout_ms)
        if element is None:
            logger.warning("%s button not found (%r); continuing.", step, locator)
            result.warn(f"{step} button not found: {locator!r}")
            return

        before = page.url
        clicked = await self.driver.click(element)
        if not clicked.clicked:
            logger.warning("%s button could not be clicked; continuing.", step)
            result.warn(f"{step} button could not be clicked")
            return

        await self.navigator.wait_for_navigation(
            page, before, timeout_ms=self.timings.post_click_navigation_ms
        )

    async def _step(self, session: Any, result: CaptureResult, name: str) -> None:
        """
        With step debugging on, save a screenshot per flow step (`step_NN_<name>.png`).
        """
        result.steps += 1
        if self.step_debug_dir is None:
            return
        safe = re.sub(r"[^a-zA-Z0-9_-]+", "_", name).strip("_")[:60] or "step"
        await session.screenshot(self.step_debug_dir / f"step_{result.steps:02d}_{safe}.png")
