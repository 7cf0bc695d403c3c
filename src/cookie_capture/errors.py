from __future__ import annotations


class CaptureError(RuntimeError):
    """
    Base class for every failure the cookie-capture engine reports to its caller.
    """


class ConfigurationError(CaptureError):
    """
    Missing or invalid required input (no target URL, internal-user flow without username fields,
    an unusable TOTP secret). Raised before any browser is launched.
    """


class ElementNotFound(CaptureError):
    def __init__(self, step: str, locator: str) -> None:
        super().__init__(f"{step}: no element matched locator {locator!r}")
        self.step = step
        self.locator = locator


class ValueMismatch(CaptureError):
    def __init__(self, step: str, *, expected_len: int, actual_len: int) -> None:
        # Lengths only: the values themselves are usually credentials.
        super().__init__(
            f"{step}: field holds {actual_len} characters after fill, expected {expected_len}"
        )
        self.step = step


class NavigationWarning(CaptureError):
    """
    A navigation wait exceeded its timeout. Never fatal; carried as a warning on the capture result.
    """


class SessionFailure(CaptureError):
    """
    The browser session itself is unusable (launch failure, crash, disconnect).
    """


def first_line(e: BaseException) -> str:
    # Playwright errors carry multi-line call logs; the first line is the useful part.
    text = str(e) or e.__class__.__name__
    return text.splitlines()[0] if text.strip() else e.__class__.__name__
