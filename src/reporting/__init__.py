"""
Problem model, input validation and report assembly shared by every checker.
"""

from .problems import Problem, Severity

__all__ = ["Problem", "Severity"]
