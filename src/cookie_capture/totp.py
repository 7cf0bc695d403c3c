from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

import pyotp

from .errors import ConfigurationError


logger = logging.getLogger(__name__)

DEFAULT_PERIOD_SECONDS = 30
CODE_DIGITS = 6


def _now_ms() -> int:
    return int(time.time() * 1000)


def normalize_secret(secret: str) -> str:
    # Authenticator apps display secrets in groups ("JBSW Y3DP ...") and sometimes lowercase.
    return "".join((secret or "").split()).upper()


def _totp(secret: str, period: int) -> pyotp.TOTP:
    s = normalize_secret(secret)
    if not s:
        raise ConfigurationError("TOTP secret is empty")
    if period <= 0:
        raise ConfigurationError(f"TOTP period must be positive, got {period}")
    return pyotp.TOTP(s, digits=CODE_DIGITS, interval=period)


def current_code(
    secret: str,
    now_epoch_ms: Optional[int] = None,
    *,
    period: int = DEFAULT_PERIOD_SECONDS,
) -> tuple[str, int]:
    """
    Return `(code, seconds_remaining)` for the time step containing `now_epoch_ms`.

    The step counter is `floor(now / period)`; `seconds_remaining` counts down from `period` at the
    start of a step to 1 in its last second.

    Raises ConfigurationError for an empty or non-base32 secret.
    """
    now_ms = _now_ms() if now_epoch_ms is None else int(now_epoch_ms)
    now_s = now_ms // 1000
    totp = _totp(secret, period)
    try:
        code = totp.at(now_s)
    except (ValueError, TypeError) as e:
        # binascii.Error (bad base32) is a ValueError subclass.
        raise ConfigurationError(f"TOTP secret is not valid base32: {e}") from e
    return code, period - (now_s % period)


def validate_secret(secret: str) -> None:
    current_code(secret, 0)


@dataclass
class TotpState:
    """
    Countdown holder for one secret, owned by a single request or display session.

    The code is regenerated once `period` seconds have elapsed since it was generated. When
    regeneration fails the previous code is kept and flagged `stale`.
    """

    secret: str = field(repr=False)
    period: int = DEFAULT_PERIOD_SECONDS
    current: Optional[str] = field(default=None, repr=False)
    generated_at_ms: Optional[int] = None
    stale: bool = False

    def seconds_remaining(self, now_ms: int) -> int:
        if self.generated_at_ms is None:
            return 0
        elapsed = max(0, (now_ms - self.generated_at_ms) // 1000)
        return max(0, self.period - elapsed)

    def needs_refresh(self, now_ms: int) -> bool:
        if self.current is None or self.generated_at_ms is None:
            return True
        return now_ms - self.generated_at_ms >= self.period * 1000

    def refresh(self, now_ms: Optional[int] = None) -> tuple[Optional[str], int]:
        """
        Return `(code, seconds_remaining)`, regenerating first when the current code has expired.
        """
        now = _now_ms() if now_ms is None else int(now_ms)
        if self.needs_refresh(now):
            try:
                code, remaining = current_code(self.secret, now, period=self.period)
            except ConfigurationError:
                if self.current is None:
                    raise
                logger.warning("TOTP regeneration failed; keeping previous code as stale.", exc_info=True)
                self.stale = True
                return self.current, 0
            self.current = code
            # Align the generation timestamp to the step start so the countdown matches the code's lifetime.
            self.generated_at_ms = now - (self.period - remaining) * 1000 - (now % 1000)
            self.stale = False
        return self.current, self.seconds_remaining(now)
