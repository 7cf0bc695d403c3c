from __future__ import annotations

import logging
from pathlib import Path

import pytest
from playwright.async_api import Error as PlaywrightError

from cookie_capture.capture.session import DEFAULT_LAUNCH_ARGS, BrowserSession, BrowserSettings
from cookie_capture.errors import SessionFailure


class FakeChromium:
    def __init__(self, *, missing: tuple[str, ...] = (), error: str = "", channel_errors: dict | None = None) -> None:
        self.missing = missing
        self.error = error
        self.channel_errors = dict(channel_errors or {})
        self.calls: list[tuple[str, dict]] = []

    async def launch_persistent_context(self, user_data_dir: str, **kwargs):
        channel = kwargs.get("channel", "")
        self.calls.append((channel, kwargs))
        if self.error:
            raise PlaywrightError(self.error)
        if channel in self.channel_errors:
            raise PlaywrightError(self.channel_errors[channel])
        if channel in self.missing:
            raise PlaywrightError("Executable doesn't exist at /ms-playwright/chromium-1091/chrome-linux/chrome")
        return f"context:{channel or 'bundled'}"


class FakePlaywright:
    def __init__(self, chromium: FakeChromium) -> None:
        self.chromium = chromium


class FakeContext:
    def __init__(self, cookies: list[dict], *, error: str = "") -> None:
        self._cookies = cookies
        self.error = error

    async def cookies(self) -> list[dict]:
        if self.error:
            raise PlaywrightError(self.error)
        return self._cookies


def _session(tmp_path: Path, **settings) -> BrowserSession:
    s = BrowserSession(BrowserSettings(**settings))
    s.profile_dir = tmp_path / "profile"
    return s


async def test_launch_uses_bundled_chromium_with_configured_args(tmp_path: Path) -> None:
    chromium = FakeChromium()
    ctx = await _session(tmp_path, slow_mo_ms=100)._launch(FakePlaywright(chromium))

    assert ctx == "context:bundled"
    channel, kwargs = chromium.calls[0]
    assert channel == ""
    assert kwargs["args"] == list(DEFAULT_LAUNCH_ARGS)
    assert kwargs["headless"] is True
    assert kwargs["slow_mo"] == 100
    assert "Chrome/120" in kwargs["user_agent"]


async def test_missing_bundled_chromium_falls_back_to_chrome_then_edge(tmp_path: Path) -> None:
    chromium = FakeChromium(missing=("", "chrome"))
    ctx = await _session(tmp_path)._launch(FakePlaywright(chromium))

    assert ctx == "context:msedge"
    assert [c for c, _ in chromium.calls] == ["", "chrome", "msedge"]


async def test_other_launch_errors_are_not_masked_by_fallback(tmp_path: Path) -> None:
    chromium = FakeChromium(error="Browser closed unexpectedly")
    with pytest.raises(PlaywrightError):
        await _session(tmp_path)._launch(FakePlaywright(chromium))
    assert len(chromium.calls) == 1


async def test_explicit_channel_is_used_without_fallback(tmp_path: Path) -> None:
    chromium = FakeChromium()
    await _session(tmp_path, channel="msedge")._launch(FakePlaywright(chromium))
    assert [c for c, _ in chromium.calls] == ["msedge"]


async def test_unopened_session_is_unusable(tmp_path: Path) -> None:
    s = BrowserSession()
    assert not s.is_usable()
    with pytest.raises(SessionFailure):
        s.page


async def test_close_removes_the_profile_directory(tmp_path: Path) -> None:
    s = _session(tmp_path)
    assert s.profile_dir is not None
    s.profile_dir.mkdir()
    (s.profile_dir / "Cookies").write_bytes(b"x")
    profile = s.profile_dir

    await s.close()

    assert not profile.exists()
    assert s.profile_dir is None


async def test_native_cookies_map_session_expiry(tmp_path: Path) -> None:
    s = _session(tmp_path)
    s._context = FakeContext(
        [
            {
                "name": "sid",
                "value": "abc",
                "domain": ".example.com",
                "path": "/",
                "expires": -1,
                "httpOnly": True,
                "secure": True,
                "sameSite": "Lax",
            }
        ]
    )
    cookies = await s.native_cookies()

    assert [c.name for c in cookies] == ["sid"]
    assert cookies[0].expires is None
    assert cookies[0].http_only is True


async def test_chrome_launch_error_is_logged_before_trying_edge(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    chromium = FakeChromium(
        missing=("",),
        channel_errors={"chrome": "Chrome crashed on startup\nCall log:\n  - <launching> chrome"},
    )
    with caplog.at_level(logging.WARNING, logger="cookie_capture.capture.session"):
        ctx = await _session(tmp_path)._launch(FakePlaywright(chromium))

    assert ctx == "context:msedge"
    warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert any("Chrome crashed on startup" in m for m in warnings)
    assert not any("Call log" in m for m in warnings)


async def test_cookie_jar_failure_is_a_single_line_session_failure(tmp_path: Path) -> None:
    s = _session(tmp_path)
    s._context = FakeContext([], error="Target page, context or browser has been closed\nCall log:\n  - waiting")

    with pytest.raises(SessionFailure) as info:
        await s.native_cookies()

    assert "\n" not in str(info.value)
    assert str(info.value).endswith("has been closed")
