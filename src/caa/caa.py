# caa.py
from __future__ import annotations

import logging
from typing import List, Optional

from dnslookup.resolver import DNSLookupError, Lookup
from reporting.problems import Problem, Severity, dns_lookup_failed
from reporting.targets import normalize_target, split_wildcard

from .ca_policy import (
    DEFAULT_ISSUER_DOMAIN,
    CAARecord,
    PublicSuffixBoundary,
    ancestors,
    collate_records,
    extract_issuer_domain,
)

logger = logging.getLogger(__name__)


class CAACheckError(Exception):
    """The CAA check itself could not complete (not a finding about the domain)."""


def caa_critical_unknown(domain: str, wildcard: bool, records: List[CAARecord], issuer: str) -> Problem:
    return Problem(
        name="CaaCriticalUnknown",
        explanation=(
            f"CAA record(s) exist on {domain} (wildcard={str(wildcard).lower()}) that are marked as critical "
            f"but are unknown to the {issuer} CA. These record(s) as shown in the detail must be removed, "
            "or marked as non-critical, before a certificate can be issued."
        ),
        detail=collate_records(records),
        severity=Severity.FATAL,
    )


def caa_issuance_not_allowed(domain: str, wildcard: bool, records: List[CAARecord], issuer: str) -> Problem:
    return Problem(
        name="CaaIssuanceNotAllowed",
        explanation=(
            f'No CAA record on {domain} (wildcard={str(wildcard).lower()}) contains the issuance domain "{issuer}". '
            f'You must either add an additional record to include "{issuer}" or remove every existing CAA record. '
            "A list of the CAA records are provided in the details."
        ),
        detail=collate_records(records),
        severity=Severity.FATAL,
    )


class CAAChecker:
    """
    Walks from a name towards its public suffix and evaluates the first CAA RRset found.

      - The first level publishing *any* CAA record is authoritative; the walk stops there.
      - No CAA anywhere up to (and including) the public suffix means issuance is unrestricted.
      - A failed lookup is reported as DNSLookupFailed and ends the walk.

    A record is treated as critical when its flag has bit 1 *or* bit 128 set
    (CRITICAL_FLAG_BITS). Checking only `flag & 1` would let a flag-128 record with
    an unknown tag through, while 128 is the Issuer Critical value RFC 8659 defines,
    so both bits block issuance here.
    """

    def __init__(
        self,
        lookup: Lookup,
        issuer_domain: str = DEFAULT_ISSUER_DOMAIN,
        boundary: Optional[PublicSuffixBoundary] = None,
    ) -> None:
        self.lookup = lookup
        self.issuer_domain = issuer_domain
        self.boundary = boundary or PublicSuffixBoundary()

    def check(self, domain: str, wildcard: bool = False, issuer_domain: Optional[str] = None) -> List[Problem]:
        """
        Raises:
            CAACheckError: if the lookup collaborator fails with anything other than DNSLookupError.
        """
        name, marked = split_wildcard(normalize_target(domain))
        wildcard = wildcard or marked
        issuer = issuer_domain or self.issuer_domain

        problems: List[Problem] = []

        for level in ancestors(name):
            try:
                answers = self.lookup.lookup(level, "CAA")
            except DNSLookupError as e:
                logger.info("CAA lookup failed at %s: %s", level, e)
                problems.append(dns_lookup_failed(level, "CAA", e))
                return problems
            except Exception as e:
                raise CAACheckError(f"error checking caa record on domain: {level}, {e}") from e

            if answers:
                logger.debug("CAA RRset found at %s (%d records)", level, len(answers))
                problems.extend(self.evaluate(level, wildcard, self._parse(level, answers), issuer))
                return problems

            if self.boundary.is_boundary(level):
                logger.debug("No CAA records up to public suffix %s", level)
                break

        return problems

    def evaluate(self, domain: str, wildcard: bool, records: List[CAARecord], issuer: str) -> List[Problem]:
        """Evaluate one CAA RRset against the issuer."""
        issue: List[CAARecord] = []
        issuewild: List[CAARecord] = []
        critical_unknown: List[CAARecord] = []

        for r in records:
            if r.tag == "issue":
                issue.append(r)
            elif r.tag == "issuewild":
                issuewild.append(r)
            elif r.tag == "iodef":
                continue
            elif r.critical:
                critical_unknown.append(r)

        if critical_unknown:
            p = caa_critical_unknown(domain, wildcard, critical_unknown, issuer)
            logger.info("%s: %s", domain, p.name)
            return [p]

        if not issue and not wildcard:
            return []

        # issuewild only overrides issue for wildcard names, it never excludes it
        applicable = issuewild if (wildcard and issuewild) else issue

        wanted = issuer.lower()
        if any(extract_issuer_domain(r.value).lower() == wanted for r in applicable):
            return []

        p = caa_issuance_not_allowed(domain, wildcard, applicable, issuer)
        logger.info("%s: %s", domain, p.name)
        return [p]

    @staticmethod
    def _parse(domain: str, answers: List[str]) -> List[CAARecord]:
        out: List[CAARecord] = []
        for text in answers:
            rec = CAARecord.parse(text)
            if rec is None:
                logger.debug("%s: skipping non-CAA rdata %r", domain, text)
                continue
            out.append(rec)
        return out
