from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from playwright.async_api import Error as PlaywrightError, Page

from ..errors import NavigationWarning, SessionFailure, first_line
from . import scripts
from .timings import CaptureTimings, DEFAULT_TIMINGS


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NavigationResult:
    url: str
    warning: Optional[NavigationWarning] = None

    @property
    def loaded(self) -> bool:
        return self.warning is None


class NavigationController:
    """
    Page loads and the waits around them. Timeouts come back as warnings; only a dead page raises.
    """

    def __init__(self, timings: CaptureTimings = DEFAULT_TIMINGS) -> None:
        self.timings = timings

    async def navigate(self, page: Page, url: str) -> NavigationResult:
        logger.info("Navigating to %s", url)
        try:
            await page.goto(
                url,
                wait_until=self.timings.navigation_wait_until,
                timeout=self.timings.navigation_timeout_ms,
            )
        except PlaywrightError as e:
            _raise_if_closed(page, e)
            # SSO flows bounce through intermediate pages that individually fail strict load criteria.
            warning = NavigationWarning(f"navigation to {url} did not complete: {first_line(e)}")
            logger.warning("%s; continuing (url=%s)", warning, _safe_url(page))
            return NavigationResult(url=_safe_url(page), warning=warning)

        logger.info("Navigation completed (url=%s)", page.url)
        return NavigationResult(url=page.url)

    async def wait_for_navigation(self, page: Page, previous_url: str, *, timeout_ms: int) -> NavigationResult:
        """
        Best-effort wait for the URL to move away from `previous_url` and the new document to parse.

        Many login widgets update the DOM in place, so timing out here is expected and only logged.
        """
        try:
            await page.wait_for_function(scripts.HREF_CHANGED, arg=previous_url, timeout=timeout_ms)
            await page.wait_for_load_state("domcontentloaded", timeout=timeout_ms)
        except PlaywrightError as e:
            _raise_if_closed(page, e)
            warning = NavigationWarning(f"no navigation within {timeout_ms}ms")
            logger.info("%s (url=%s)", warning, _safe_url(page))
            return NavigationResult(url=_safe_url(page), warning=warning)

        logger.info("Navigated to %s", page.url)
        return NavigationResult(url=page.url)

    async def settle(self, delay_ms: Optional[int] = None) -> None:
        ms = self.timings.settle_delay_ms if delay_ms is None else delay_ms
        if ms <= 0:
            return
        logger.info("Waiting %.1fs for client-side redirects to settle", ms / 1000)
        await asyncio.sleep(ms / 1000)


def _raise_if_closed(page: Page, e: BaseException) -> None:
    if page.is_closed():
        raise SessionFailure(f"browser page closed during navigation: {first_line(e)}") from e


def _safe_url(page: Page) -> str:
    try:
        return page.url
    except Exception:
        return ""
