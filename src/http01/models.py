from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

# RedirectViolation.kind values
TOO_MANY_REDIRECTS = "too_many_redirects"
BAD_PORT = "bad_port"
BAD_SCHEME = "bad_scheme"
MISSING_TRAILING_SLASH = "missing_trailing_slash"


class ProtocolMismatchError(ConnectionError):
    """The peer answered in a different protocol than we spoke (HTTP vs HTTPS)."""


@dataclass
class HTTPCheckResult:
    """
    What one simulated validation fetch observed from a single address.

    status_code stays None when no response was received at all.
    """
    ip: IPAddress
    status_code: Optional[int] = None
    server_header: str = ""

    def is_zero(self) -> bool:
        return self.status_code is None

    @property
    def address_type(self) -> str:
        return "IPv6" if self.ip.version == 6 else "IPv4"

    def __str__(self) -> str:
        code = self.status_code if self.status_code is not None else 0
        return f"[Address Type={self.address_type},Response Code={code},Server={self.server_header}]"

    def to_dict(self):
        return {
            "ip": str(self.ip),
            "address_type": self.address_type,
            "status_code": self.status_code,
            "server_header": self.server_header,
        }


@dataclass(frozen=True)
class RedirectViolation:
    """A redirect the validation agent refuses to follow."""
    kind: str
    url: str
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class FetchOutcome:
    """
    Result of following a validation URL.

    At most one of violation/error is set. result always carries whatever
    response was seen before the fetch stopped.
    """
    result: HTTPCheckResult
    violation: Optional[RedirectViolation] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.violation is None and self.error is None
