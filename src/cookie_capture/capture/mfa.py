from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from playwright.async_api import Page

from ..errors import ConfigurationError
from ..logging_config import mask_secret
from ..models import MfaSpec
from ..totp import TotpState
from .driver import FormDriver
from .locator import ElementLocator
from .navigation import NavigationController
from .timings import CaptureTimings, DEFAULT_TIMINGS


logger = logging.getLogger(__name__)


class MfaState(str, enum.Enum):
    NO_MFA_CONFIGURED = "no_mfa_configured"
    AWAITING_OTP_FIELD = "awaiting_otp_field"
    OTP_FIELD_FOUND = "otp_field_found"
    CODE_ENTERED = "code_entered"
    VERIFY_CLICKED = "verify_clicked"
    SETTLE_WAIT = "settle_wait"
    DONE = "done"
    ERROR = "error"


class MfaError(str, enum.Enum):
    MFA_FIELD_MISSING = "mfa_field_missing"
    CODE_UNAVAILABLE = "code_unavailable"
    CODE_MISMATCH = "code_mismatch"
    VERIFY_BUTTON_MISSING = "verify_button_missing"
    VERIFY_CLICK_FAILED = "verify_click_failed"


@dataclass
class MfaResult:
    trail: list[MfaState] = field(default_factory=list)
    error: Optional[MfaError] = None
    message: str = ""

    @property
    def state(self) -> MfaState:
        return self.trail[-1] if self.trail else MfaState.NO_MFA_CONFIGURED

    @property
    def ok(self) -> bool:
        return self.error is None


class MfaStepHandler:
    """
    Fill a one-time code into the OTP field and press verify.

    Failures end in `MfaState.ERROR` with a reason; they never raise, because cookies set before
    the MFA step are still worth returning.
    """

    def __init__(
        self,
        *,
        locator: ElementLocator,
        driver: FormDriver,
        navigator: NavigationController,
        timings: CaptureTimings = DEFAULT_TIMINGS,
        clock_ms: Optional[Callable[[], int]] = None,
    ) -> None:
        self.locator = locator
        self.driver = driver
        self.navigator = navigator
        self.timings = timings
        self._clock_ms = clock_ms or (lambda: int(time.time() * 1000))

    async def run(self, page: Page, mfa: Optional[MfaSpec]) -> MfaResult:
        result = MfaResult()

        if mfa is None or not mfa.is_active:
            result.trail.append(MfaState.NO_MFA_CONFIGURED)
            logger.info("No MFA configured; skipping MFA step.")
            return result

        result.trail.append(MfaState.AWAITING_OTP_FIELD)
        logger.info("Waiting for OTP input (timeout=%dms)", self.timings.mfa_field.timeout_ms)
        otp_input = await self.locator.locate(
            page, mfa.otp_input_locator, timeout_ms=self.timings.mfa_field.timeout_ms
        )
        if otp_input is None:
            return _fail(result, MfaError.MFA_FIELD_MISSING, f"OTP input not found: {mfa.otp_input_locator!r}")
        result.trail.append(MfaState.OTP_FIELD_FOUND)

        try:
            code = self.resolve_code(mfa)
        except ConfigurationError as e:
            return _fail(result, MfaError.CODE_UNAVAILABLE, str(e))

        fill = await self.driver.set_value(otp_input, code)
        if not fill.verified:
            return _fail(
                result,
                MfaError.CODE_MISMATCH,
                f"OTP field holds {fill.actual_len} characters after fill, expected {fill.expected_len}",
            )
        result.trail.append(MfaState.CODE_ENTERED)
        logger.info("OTP entered (%s)", mask_secret(code))

        verify = await self.locator.locate(
            page, mfa.verify_button_locator, timeout_ms=self.timings.verify_button.timeout_ms
        )
        if verify is None:
            return _fail(
                result, MfaError.VERIFY_BUTTON_MISSING, f"Verify button not found: {mfa.verify_button_locator!r}"
            )

        before = page.url
        clicked = await self.driver.click(verify)
        if not clicked.clicked:
            return _fail(result, MfaError.VERIFY_CLICK_FAILED, "Verify button could not be clicked")
        result.trail.append(MfaState.VERIFY_CLICKED)

        # Timing out here is normal: plenty of MFA widgets swap the DOM without navigating.
        result.trail.append(MfaState.SETTLE_WAIT)
        await self.navigator.wait_for_navigation(page, before, timeout_ms=self.timings.mfa_settle_ms)

        result.trail.append(MfaState.DONE)
        logger.info("MFA step complete (url=%s)", page.url)
        return result

    def resolve_code(self, mfa: MfaSpec) -> str:
        if mfa.code_kind == "static":
            return mfa.secret_or_code.strip()
        # A fresh state per call: TOTP state is never shared between requests.
        code, remaining = TotpState(secret=mfa.secret_or_code).refresh(self._clock_ms())
        logger.info("Generated TOTP code (%ss left in period)", remaining)
        return code or ""


def _fail(result: MfaResult, error: MfaError, message: str) -> MfaResult:
    result.trail.append(MfaState.ERROR)
    result.error = error
    result.message = message
    logger.warning("MFA step failed (%s): %s", error.value, message)
    return result
