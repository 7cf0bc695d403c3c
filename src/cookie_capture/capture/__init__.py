from .cookies import CookieSet, parse_document_cookies, reconcile
from .orchestrator import CaptureResult, CookieCaptureOrchestrator, FlowState
from .timings import CaptureTimings, StepPolicy

__all__ = [
    "CaptureResult",
    "CaptureTimings",
    "CookieCaptureOrchestrator",
    "CookieSet",
    "FlowState",
    "StepPolicy",
    "parse_document_cookies",
    "reconcile",
]
