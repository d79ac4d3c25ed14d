"""
ACME preflight: find out why HTTP-01 validation or the CAA check would fail
before asking a CA for a certificate.
"""

from .runner import DomainReport, PreflightRunner

__all__ = ["DomainReport", "PreflightRunner"]
