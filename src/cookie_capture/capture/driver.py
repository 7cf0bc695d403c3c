from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from playwright.async_api import ElementHandle, Error as PlaywrightError

from ..errors import first_line
from ..logging_config import mask_secret
from . import scripts
from .timings import CaptureTimings, DEFAULT_TIMINGS


logger = logging.getLogger(__name__)


class FillOutcome(str, enum.Enum):
    VERIFIED = "verified"
    MISMATCH = "mismatch"


class ClickOutcome(str, enum.Enum):
    CLICKED = "clicked"
    FAILED = "failed"


@dataclass(frozen=True)
class FillResult:
    outcome: FillOutcome
    expected_len: int
    actual_len: int
    used_fallback: bool = False

    @property
    def verified(self) -> bool:
        return self.outcome is FillOutcome.VERIFIED


@dataclass(frozen=True)
class ClickResult:
    outcome: ClickOutcome
    used_fallback: bool = False

    @property
    def clicked(self) -> bool:
        return self.outcome is ClickOutcome.CLICKED


class FormDriver:
    """
    Put values into form fields the way a person would, falling back to direct DOM assignment
    when the native Playwright call fails, and always reading the result back.
    """

    def __init__(self, timings: CaptureTimings = DEFAULT_TIMINGS) -> None:
        self.timings = timings

    async def set_value(self, element: ElementHandle, value: str) -> FillResult:
        used_fallback = False

        try:
            await element.focus()
        except PlaywrightError:
            logger.warning("Native focus failed; assigning focus directly.")
            used_fallback = True
            try:
                await element.evaluate(scripts.FORCE_FOCUS)
            except PlaywrightError:
                logger.debug("Direct focus failed too.", exc_info=True)

        try:
            await element.fill("")
        except PlaywrightError:
            logger.warning("Native clear failed; forcing the field value to empty.")
            used_fallback = True
            try:
                await element.evaluate(scripts.FORCE_CLEAR)
            except PlaywrightError:
                logger.debug("Forced clear failed too.", exc_info=True)

        try:
            await element.type(value, delay=self.timings.type_delay_ms)
        except PlaywrightError:
            logger.warning("Typing failed; assigning the value and dispatching input/change events.")
            used_fallback = True
            try:
                await element.evaluate(scripts.FORCE_VALUE, value)
            except PlaywrightError:
                logger.debug("Forced value assignment failed.", exc_info=True)

        actual = await self._read_value(element)
        if actual == value:
            logger.debug("Field verified (%s).", mask_secret(value))
            return FillResult(FillOutcome.VERIFIED, len(value), len(actual), used_fallback)

        logger.warning(
            "Field readback mismatch (expected %d chars, found %d).",
            len(value),
            len(actual),
        )
        return FillResult(FillOutcome.MISMATCH, len(value), len(actual), used_fallback)

    async def click(self, element: ElementHandle) -> ClickResult:
        try:
            await element.click(timeout=self.timings.click_timeout_ms)
            return ClickResult(ClickOutcome.CLICKED)
        except PlaywrightError as e:
            logger.warning("Native click failed (%s); invoking click() on the node.", first_line(e))

        try:
            await element.evaluate(scripts.PROGRAMMATIC_CLICK)
            return ClickResult(ClickOutcome.CLICKED, used_fallback=True)
        except PlaywrightError:
            logger.warning("Programmatic click failed as well.", exc_info=True)
            return ClickResult(ClickOutcome.FAILED, used_fallback=True)

    async def _read_value(self, element: ElementHandle) -> str:
        try:
            return await element.input_value()
        except PlaywrightError:
            # input_value() only works on input/textarea/select; contenteditable widgets land here.
            pass
        try:
            return str(await element.evaluate(scripts.READ_VALUE))
        except PlaywrightError:
            logger.debug("Could not read field value back.", exc_info=True)
            return ""
