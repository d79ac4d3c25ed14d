from __future__ import annotations

import ipaddress
import logging
from typing import List, Optional, Protocol, Sequence, Tuple, Union

import dns.exception
import dns.rdatatype
import dns.resolver

from reporting.problems import Problem, dns_lookup_failed

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class DNSLookupError(Exception):
    """A lookup could not be completed (timeout, SERVFAIL, no reachable nameserver...)."""

    def __init__(self, name: str, rdtype: str, reason: str) -> None:
        super().__init__(f"DNS response for {name}/{rdtype} did not have an acceptable response code: {reason}")
        self.name = name
        self.rdtype = rdtype
        self.reason = reason


class Lookup(Protocol):
    # Returns rdata in presentation format; [] for NXDOMAIN/NODATA.
    def lookup(self, name: str, rdtype: str) -> List[str]:
        ...


class DNSLookup:
    """
    Query a recursive resolver with dnspython and return the matching rdata as text.

    - NXDOMAIN / NODATA are not errors: they return an empty list.
    - Everything else that stops us from getting an answer raises DNSLookupError,
      so callers can fold it into a DNSLookupFailed problem.
    """

    def __init__(
        self,
        nameservers: Optional[Sequence[str]] = None,
        port: int = 53,
        timeout: float = 2.0,
        lifetime: float = 4.0,
    ) -> None:
        # Without explicit nameservers, read the system configuration.
        self._resolver = dns.resolver.Resolver(configure=not nameservers)
        if nameservers:
            self._resolver.nameservers = list(nameservers)
        self._resolver.port = int(port)
        self._resolver.timeout = float(timeout)
        self._resolver.lifetime = float(lifetime)

    def lookup(self, name: str, rdtype: str) -> List[str]:
        qname = name.rstrip(".") + "."
        rdtype = str(rdtype).upper()

        try:
            ans = self._resolver.resolve(qname, rdtype, raise_on_no_answer=False)
        except dns.resolver.NXDOMAIN:
            logger.debug("%s/%s: NXDOMAIN", qname, rdtype)
            return []
        except dns.resolver.NoNameservers as e:
            raise DNSLookupError(name, rdtype, "SERVFAIL") from e
        except dns.exception.Timeout as e:
            raise DNSLookupError(name, rdtype, "timeout") from e
        except dns.exception.DNSException as e:
            raise DNSLookupError(name, rdtype, f"{type(e).__name__}: {e}") from e

        if ans.rrset is None:
            logger.debug("%s/%s: NODATA", qname, rdtype)
            return []

        wanted = dns.rdatatype.from_text(rdtype)
        return [rdata.to_text() for rdata in ans.rrset if rdata.rdtype == wanted]


def resolve_addresses(lookup: Lookup, domain: str) -> Tuple[List[IPAddress], List[Problem]]:
    """
    Resolve AAAA then A for a domain.

    AAAA comes first because a CA validation agent prefers IPv6 when it is present.
    Failures are returned as DNSLookupFailed problems, one per record type.
    """
    addresses: List[IPAddress] = []
    problems: List[Problem] = []

    for rdtype in ("AAAA", "A"):
        try:
            answers = lookup.lookup(domain, rdtype)
        except DNSLookupError as e:
            problems.append(dns_lookup_failed(domain, rdtype, e))
            continue

        for text in answers:
            try:
                addresses.append(ipaddress.ip_address(text.strip()))
            except ValueError:
                logger.debug("%s/%s: ignoring unparseable address %r", domain, rdtype, text)

    return addresses, problems
