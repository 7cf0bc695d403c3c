from .capture.cookies import CookieSet, reconcile
from .capture.orchestrator import CaptureResult, CookieCaptureOrchestrator
from .errors import CaptureError, ConfigurationError, SessionFailure
from .models import CapturedCookie, LoginRequest, MfaSpec

__all__ = [
    "CaptureError",
    "CaptureResult",
    "CapturedCookie",
    "ConfigurationError",
    "CookieCaptureOrchestrator",
    "CookieSet",
    "LoginRequest",
    "MfaSpec",
    "SessionFailure",
    "reconcile",
]
