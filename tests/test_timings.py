from __future__ import annotations

import pytest

from cookie_capture.capture.timings import DEFAULT_TIMINGS, StepPolicy


def test_step_policy_needs_at_least_one_attempt() -> None:
    with pytest.raises(ValueError, match="attempts"):
        StepPolicy(timeout_ms=1_000, attempts=0)


def test_step_policy_rejects_negative_waits() -> None:
    with pytest.raises(ValueError):
        StepPolicy(timeout_ms=-1)
    with pytest.raises(ValueError):
        StepPolicy(timeout_ms=1_000, backoff_ms=-5)


def test_with_overrides_ignores_unset_values() -> None:
    t = DEFAULT_TIMINGS.with_overrides(settle_delay_ms=0, type_delay_ms=None)
    assert t.settle_delay_ms == 0
    assert t.type_delay_ms == DEFAULT_TIMINGS.type_delay_ms
    assert t.username == DEFAULT_TIMINGS.username
