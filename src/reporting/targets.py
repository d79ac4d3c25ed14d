import ipaddress
import re
from typing import Union

# Invalid user input base error
class InvalidTarget(ValueError):
    """Base error for invalid user input targets."""

# Invalid domain name
class InvalidDomain(InvalidTarget):
    """Raised when a target is not a valid domain name."""

# Invalid IP address
class InvalidAddress(InvalidTarget):
    """Raised when a target address is not a valid IPv4/IPv6 address."""

# Normalize the user input by trimming white space and removing trailing dots and turning it into lower case.
def normalize_target(raw: str) -> str:
    return (raw or "").strip().rstrip(".").lower()

# Check to ensure the provided domain is a valid domain. Checks only format not existence
_LABEL = re.compile(r"^_?[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")
def is_domain(s: str) -> bool:
    if not s or len(s) > 253 or any(c.isspace() for c in s):
        return False

    labels = s.split(".")
    if any(label == "" or len(label) > 63 for label in labels):
        return False

    return all(_LABEL.match(label) for label in labels)

# Split off a leading "*." wildcard marker
def split_wildcard(name: str):
    if name.startswith("*."):
        return name[2:], True
    return name, False

# normalizes text and checks to see if it is a domain; "*.example.com" is accepted
def require_domain(raw: str) -> str:
    s = normalize_target(raw)
    base, wildcard = split_wildcard(s)
    if not is_domain(base):
        raise InvalidDomain("Invalid domain format")
    if wildcard and "." not in base:
        raise InvalidDomain("Wildcard must sit below a registrable name")
    return s

def require_address(raw: str) -> Union[ipaddress.IPv4Address, ipaddress.IPv6Address]:
    s = (raw or "").strip().strip("[]")
    try:
        return ipaddress.ip_address(s)
    except ValueError:
        raise InvalidAddress(f"Invalid IP address: {raw!r}") from None
