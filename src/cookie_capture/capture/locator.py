from __future__ import annotations

import logging
from typing import Optional

from playwright.async_api import ElementHandle, Error as PlaywrightError, Page

from . import scripts


logger = logging.getLogger(__name__)


def xpath_selector(expression: str) -> str:
    expr = (expression or "").strip()
    if expr.startswith("xpath="):
        return expr
    return f"xpath={expr}"


class ElementLocator:
    """
    Resolve a user-supplied XPath to a single element on the live page.

    Absence is a normal outcome (`None`); retries belong to the caller.
    """

    async def locate(
        self,
        page: Page,
        expression: str,
        *,
        timeout_ms: int,
        must_be_visible: bool = True,
    ) -> Optional[ElementHandle]:
        if not (expression or "").strip():
            return None

        state = "visible" if must_be_visible else "attached"
        try:
            element = await page.wait_for_selector(xpath_selector(expression), state=state, timeout=timeout_ms)
            if element is not None:
                # Visible per Playwright; only the disabled/read-only check is left to do.
                await self._remediate(element, expression, must_be_visible=False)
                return element
        except PlaywrightError as e:
            # TimeoutError is a subclass; also covers malformed XPath.
            logger.debug("wait_for_selector(%r) failed: %s", expression, e)

        # One direct evaluation, no waiting: tells "present but hidden/disabled" apart from "absent".
        element = await self._evaluate_once(page, expression)
        if element is None:
            logger.info("Locator %r matched nothing.", expression)
            return None

        await self._remediate(element, expression, must_be_visible=must_be_visible)
        return element

    async def _evaluate_once(self, page: Page, expression: str) -> Optional[ElementHandle]:
        try:
            handle = await page.evaluate_handle(scripts.RESOLVE_XPATH, expression)
        except PlaywrightError:
            logger.debug("Direct XPath evaluation failed for %r.", expression, exc_info=True)
            return None
        element = handle.as_element()
        if element is None:
            await _dispose_quietly(handle)
        return element

    async def _remediate(self, element: ElementHandle, expression: str, *, must_be_visible: bool) -> None:
        """
        Best-effort: clear inline hiding styles and disabling attributes on a node that exists
        but did not become usable in time. Animated and gated login forms hit this regularly.
        """
        try:
            state = await element.evaluate(scripts.ELEMENT_STATE)
        except PlaywrightError:
            logger.debug("Could not read element state for %r.", expression, exc_info=True)
            return

        if must_be_visible and not state.get("visible", True):
            logger.warning("Element %r exists but is hidden; forcing visibility.", expression)
            try:
                await element.evaluate(scripts.FORCE_VISIBLE)
            except PlaywrightError:
                logger.debug("Forcing visibility failed for %r.", expression, exc_info=True)

        if state.get("disabled") or state.get("readOnly"):
            logger.warning("Element %r exists but is disabled/read-only; clearing those attributes.", expression)
            try:
                await element.evaluate(scripts.FORCE_ENABLED)
            except PlaywrightError:
                logger.debug("Enabling failed for %r.", expression, exc_info=True)


async def _dispose_quietly(handle) -> None:
    try:
        await handle.dispose()
    except PlaywrightError:
        pass
