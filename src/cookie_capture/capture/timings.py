from __future__ import annotations

from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class StepPolicy:
    timeout_ms: int
    attempts: int = 1
    backoff_ms: int = 0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError(f"attempts must be at least 1, got {self.attempts}")
        if self.timeout_ms < 0 or self.backoff_ms < 0:
            raise ValueError("timeout_ms and backoff_ms must not be negative")


@dataclass(frozen=True)
class CaptureTimings:
    """
    Every wait, retry and backoff used by a capture, in one place.

    Login pages change under us; tune these here rather than at the call sites.
    """

    # Navigation: "content parsed" rather than network-idle, since analytics/long-polling never settle.
    navigation_timeout_ms: int = 60_000
    navigation_wait_until: str = "domcontentloaded"

    # Fixed wait after the login sequence so client-side redirects land their cookies.
    settle_delay_ms: int = 5_000

    username: StepPolicy = field(default_factory=lambda: StepPolicy(timeout_ms=10_000, attempts=3, backoff_ms=1_000))
    password: StepPolicy = field(default_factory=lambda: StepPolicy(timeout_ms=10_000))
    next_button: StepPolicy = field(default_factory=lambda: StepPolicy(timeout_ms=5_000))
    post_click_navigation_ms: int = 5_000

    mfa_field: StepPolicy = field(default_factory=lambda: StepPolicy(timeout_ms=10_000))
    verify_button: StepPolicy = field(default_factory=lambda: StepPolicy(timeout_ms=5_000))
    mfa_settle_ms: int = 5_000

    # Per-keystroke delay; some frameworks only update their model on key events.
    type_delay_ms: int = 50
    click_timeout_ms: int = 5_000

    def with_overrides(self, **changes: int) -> "CaptureTimings":
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


DEFAULT_TIMINGS = CaptureTimings()
