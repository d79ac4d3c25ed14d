"""
ACME HTTP-01 validation-fetch simulation.

Replays the request a CA validation agent makes for
http://<domain>/.well-known/acme-challenge/<token> against one pinned address,
including its redirect policy, and classifies failures into Problems.
"""

from .models import FetchOutcome, HTTPCheckResult, RedirectViolation
from .tool import HTTP01Simulator, translate_http_error

__all__ = [
    "FetchOutcome",
    "HTTP01Simulator",
    "HTTPCheckResult",
    "RedirectViolation",
    "translate_http_error",
]
