"""
CAA (Certification Authority Authorization) evaluation.

Public entrypoint: CAAChecker
"""

from .caa import CAACheckError, CAAChecker

__all__ = ["CAAChecker", "CAACheckError"]
