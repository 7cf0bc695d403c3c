from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from playwright.async_api import (
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    async_playwright,
)

from ..errors import SessionFailure, first_line
from ..models import CapturedCookie
from . import scripts


logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_LAUNCH_ARGS: tuple[str, ...] = (
    "--disable-web-security",
    "--no-sandbox",
    "--disable-setuid-sandbox",
)
PROFILE_PREFIX = "cookie-capture-profile-"


@dataclass(frozen=True)
class BrowserSettings:
    headless: bool = True
    slow_mo_ms: int = 0
    user_agent: str = DEFAULT_USER_AGENT
    launch_args: tuple[str, ...] = DEFAULT_LAUNCH_ARGS
    channel: str = ""
    default_timeout_ms: int = 60_000
    extra_context_options: dict[str, Any] = field(default_factory=dict)


class BrowserSession:
    """
    One isolated browser for one capture: a persistent-profile Chromium in a fresh temporary
    directory, torn down (browser, driver, profile dir) on every exit path.

        async with BrowserSession(settings) as session:
            await session.page.goto(...)
    """

    def __init__(self, settings: Optional[BrowserSettings] = None) -> None:
        self.settings = settings or BrowserSettings()
        self.profile_dir: Optional[Path] = None
        self._playwright: Optional[Playwright] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @property
    def context(self) -> BrowserContext:
        if self._context is None:
            raise SessionFailure("browser session is not open")
        return self._context

    @property
    def page(self) -> Page:
        if self._page is None:
            raise SessionFailure("browser session is not open")
        return self._page

    async def __aenter__(self) -> "BrowserSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def open(self) -> None:
        self.profile_dir = Path(tempfile.mkdtemp(prefix=PROFILE_PREFIX))
        logger.info("Launching browser (headless=%s profile=%s)", self.settings.headless, self.profile_dir)
        try:
            self._playwright = await async_playwright().start()
            self._context = await self._launch(self._playwright)
            pages = self._context.pages
            self._page = pages[0] if pages else await self._context.new_page()
            self._page.set_default_timeout(self.settings.default_timeout_ms)
            self._page.set_default_navigation_timeout(self.settings.default_timeout_ms)
        except PlaywrightError as e:
            logger.debug("Browser launch failed:\n%s", e)
            await self.close()
            raise SessionFailure(f"could not launch browser: {first_line(e)}") from e
        except BaseException:
            await self.close()
            raise

    async def _launch(self, p: Playwright) -> BrowserContext:
        kwargs: dict[str, Any] = {
            "headless": self.settings.headless,
            "slow_mo": int(self.settings.slow_mo_ms or 0),
            "args": list(self.settings.launch_args),
            "user_agent": self.settings.user_agent or None,
            **self.settings.extra_context_options,
        }
        if self.settings.channel:
            return await p.chromium.launch_persistent_context(
                str(self.profile_dir), channel=self.settings.channel, **kwargs
            )

        try:
            return await p.chromium.launch_persistent_context(str(self.profile_dir), **kwargs)
        except PlaywrightError as e:
            msg = str(e)
            if "Executable doesn't exist" not in msg:
                raise
            logger.warning(
                "Playwright Chromium executable missing; falling back to system browser channel. (%s)",
                msg.splitlines()[0],
            )

        # Try Chrome first, then Edge.
        try:
            return await p.chromium.launch_persistent_context(str(self.profile_dir), channel="chrome", **kwargs)
        except PlaywrightError as e:
            logger.warning("Chrome channel launch failed (%s); trying Edge.", first_line(e))
            logger.debug("Chrome launch error:\n%s", e)
        return await p.chromium.launch_persistent_context(str(self.profile_dir), channel="msedge", **kwargs)

    def is_usable(self) -> bool:
        return self._page is not None and not self._page.is_closed()

    async def native_cookies(self) -> list[CapturedCookie]:
        try:
            raw = await self.context.cookies()
        except PlaywrightError as e:
            logger.debug("Reading the cookie jar failed:\n%s", e)
            raise SessionFailure(f"could not read the browser cookie jar: {first_line(e)}") from e
        cookies = [CapturedCookie.from_playwright(dict(c)) for c in raw]
        logger.info("Found %d cookies in the browser jar: %s", len(cookies), [c.name for c in cookies])
        return cookies

    async def document_cookie_string(self) -> str:
        try:
            value = await self.page.evaluate(scripts.DOCUMENT_COOKIE)
        except PlaywrightError:
            # Mid-navigation or on a non-HTML document; the native jar still has everything httpOnly.
            logger.warning("Could not read document.cookie; using native cookies only.", exc_info=True)
            return ""
        return str(value or "")

    async def screenshot(self, path: Path) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await self.page.screenshot(path=str(path), full_page=True)
        except (PlaywrightError, SessionFailure, OSError):
            logger.debug("Failed to save screenshot %s.", path, exc_info=True)

    async def close(self) -> None:
        if self._context is not None:
            try:
                await self._context.close()
            except PlaywrightError:
                logger.debug("Browser context close failed.", exc_info=True)
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception:
                logger.debug("Playwright driver stop failed.", exc_info=True)
        if self.profile_dir is not None:
            shutil.rmtree(self.profile_dir, ignore_errors=True)
            logger.debug("Removed browser profile %s", self.profile_dir)

        self._page = None
        self._context = None
        self._playwright = None
        self.profile_dir = None
