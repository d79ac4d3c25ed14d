from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict


class Severity(str, Enum):
    """
    Ordered severity of a Problem.

    Debug is reserved for failures of the tool itself (not the domain).
    Warning is advisory, Error is likely blocking, Fatal blocks issuance.
    """

    DEBUG = "Debug"
    WARNING = "Warning"
    ERROR = "Error"
    FATAL = "Fatal"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {
    Severity.DEBUG: 0,
    Severity.WARNING: 1,
    Severity.ERROR: 2,
    Severity.FATAL: 3,
}


@dataclass(frozen=True)
class Problem:
    """
    A single diagnostic finding.

    name:        machine-stable identifier (e.g. "CaaIssuanceNotAllowed")
    explanation: what the finding means for the domain owner
    detail:      the concrete evidence (raw error text, literal DNS records)
    """

    name: str
    explanation: str
    detail: str
    severity: Severity

    @property
    def is_blocking(self) -> bool:
        return self.severity is Severity.FATAL

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["severity"] = self.severity.value
        return d


def sort_problems(problems):
    # most severe first; stable for equal severities
    return sorted(problems, key=lambda p: -p.severity.rank)


def internal_problem(message: str, severity: Severity = Severity.DEBUG) -> Problem:
    return Problem(
        name="InternalProblem",
        explanation="An internal error occurred while checking the domain",
        detail=message,
        severity=severity,
    )


def dns_lookup_failed(name: str, rdtype: str, err: BaseException) -> Problem:
    return Problem(
        name="DNSLookupFailed",
        explanation=f"A fatal issue occurred during the DNS lookup process for {name}/{rdtype}.",
        detail=str(err),
        severity=Severity.FATAL,
    )
