from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from .capture.session import DEFAULT_LAUNCH_ARGS, DEFAULT_USER_AGENT, BrowserSettings
from .capture.timings import CaptureTimings, DEFAULT_TIMINGS


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            var = match.group(1)
            return os.getenv(var, "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name, "") or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in {"1", "true", "t", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            if k in out:
                out[k] = _deep_merge(out[k], v)
            else:
                out[k] = v
        return out
    return override


def _default_config_from_env() -> dict:
    """
    Env-only defaults so a `.env` is enough; a YAML file is an optional override on top.
    """
    return {
        "browser": {
            "headless": _env_bool("CAPTURE_HEADLESS", default=True),
            "slow_mo_ms": _env_int("CAPTURE_SLOW_MO_MS", 0),
            "user_agent": os.getenv("CAPTURE_USER_AGENT", DEFAULT_USER_AGENT),
            "launch_args": _env_list("CAPTURE_LAUNCH_ARGS", list(DEFAULT_LAUNCH_ARGS)),
            "channel": os.getenv("CAPTURE_BROWSER_CHANNEL", ""),
        },
        "timings": {
            "navigation_timeout_ms": _env_int("CAPTURE_NAVIGATION_TIMEOUT_MS", DEFAULT_TIMINGS.navigation_timeout_ms),
            "settle_delay_ms": _env_int("CAPTURE_SETTLE_DELAY_MS", DEFAULT_TIMINGS.settle_delay_ms),
            "type_delay_ms": _env_int("CAPTURE_TYPE_DELAY_MS", DEFAULT_TIMINGS.type_delay_ms),
        },
        "server": {
            "host": os.getenv("HOST", "127.0.0.1"),
            "port": _env_int("PORT", 3003),
            "cors_origins": _env_list("CORS_ORIGINS", ["*"]),
            "max_concurrent_captures": _env_int("MAX_CONCURRENT_CAPTURES", 2),
        },
        "debug": {
            "step_debug": _env_bool("CAPTURE_STEP_DEBUG", default=False),
            "debug_dir": os.getenv("CAPTURE_DEBUG_DIR", "data/debug"),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", ""),
        },
    }


class BrowserConfig(BaseModel):
    headless: bool = True
    slow_mo_ms: int = Field(default=0, ge=0)
    user_agent: str = DEFAULT_USER_AGENT
    launch_args: list[str] = Field(default_factory=lambda: list(DEFAULT_LAUNCH_ARGS))
    # Explicit channel ("chrome", "msedge"); empty means bundled Chromium with automatic fallback.
    channel: str = ""

    def to_settings(self, *, navigation_timeout_ms: int) -> BrowserSettings:
        return BrowserSettings(
            headless=self.headless,
            slow_mo_ms=self.slow_mo_ms,
            user_agent=self.user_agent,
            launch_args=tuple(self.launch_args),
            channel=self.channel.strip(),
            default_timeout_ms=navigation_timeout_ms,
        )


class TimingsConfig(BaseModel):
    navigation_timeout_ms: int = Field(default=DEFAULT_TIMINGS.navigation_timeout_ms, gt=0)
    settle_delay_ms: int = Field(default=DEFAULT_TIMINGS.settle_delay_ms, ge=0)
    type_delay_ms: int = Field(default=DEFAULT_TIMINGS.type_delay_ms, ge=0)

    def to_timings(self) -> CaptureTimings:
        return DEFAULT_TIMINGS.with_overrides(
            navigation_timeout_ms=self.navigation_timeout_ms,
            settle_delay_ms=self.settle_delay_ms,
            type_delay_ms=self.type_delay_ms,
        )


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(default=3003, gt=0, lt=65536)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    max_concurrent_captures: int = Field(default=2, ge=1)


class DebugConfig(BaseModel):
    step_debug: bool = False
    debug_dir: str = "data/debug"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = ""

    @field_validator("level")
    @classmethod
    def _upper(cls, v: str) -> str:
        return (v or "INFO").strip().upper()


class AppConfig(BaseModel):
    browser: BrowserConfig = BrowserConfig()
    timings: TimingsConfig = TimingsConfig()
    server: ServerConfig = ServerConfig()
    debug: DebugConfig = DebugConfig()
    logging: LoggingConfig = LoggingConfig()

    def browser_settings(self) -> BrowserSettings:
        return self.browser.to_settings(navigation_timeout_ms=self.timings.navigation_timeout_ms)

    def capture_timings(self) -> CaptureTimings:
        return self.timings.to_timings()

    def step_debug_dir(self) -> Optional[str]:
        return self.debug.debug_dir if self.debug.step_debug else None


def load_config(path: Union[str, Path, None] = None) -> AppConfig:
    raw: dict = {}
    if path:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
            raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    return AppConfig.model_validate(merged)
