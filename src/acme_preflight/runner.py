"""
Runs the checkers for one domain and collects their problems.

The HTTP-01 simulation for each address and the CAA evaluation are independent,
so they run concurrently to avoid stacking their timeouts.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from caa import CAACheckError, CAAChecker
from dnslookup.resolver import IPAddress, Lookup, resolve_addresses
from http01 import HTTP01Simulator, HTTPCheckResult
from reporting.problems import Problem, Severity, internal_problem, sort_problems
from reporting.targets import normalize_target, split_wildcard

logger = logging.getLogger(__name__)


def method_not_suitable(domain: str) -> Problem:
    return Problem(
        name="MethodNotSuitable",
        explanation=(
            f"A wildcard domain name ({domain}) was requested, but the HTTP-01 validation method "
            "cannot be used for wildcard names."
        ),
        detail="",
        severity=Severity.FATAL,
    )


def no_records(domain: str) -> Problem:
    return Problem(
        name="NoRecords",
        explanation=(
            f"No valid A or AAAA records could be ultimately resolved for {domain}. This means that the CA "
            "would not be able to connect to your domain to perform HTTP validation, since it would not "
            "know where to connect to."
        ),
        detail="",
        severity=Severity.FATAL,
    )


@dataclass
class DomainReport:
    """Everything the checkers produced for one domain, problems kept per check."""
    domain: str
    addresses: List[IPAddress] = field(default_factory=list)
    http_results: List[HTTPCheckResult] = field(default_factory=list)
    dns_problems: List[Problem] = field(default_factory=list)
    http_problems: List[Problem] = field(default_factory=list)
    caa_problems: List[Problem] = field(default_factory=list)

    @property
    def problems(self) -> List[Problem]:
        return sort_problems(self.dns_problems + self.http_problems + self.caa_problems)

    def checks(self) -> Dict[str, Any]:
        """check_name -> output, in the shape Assemble.build() expects."""
        return {
            "dns": {
                "addresses": [str(a) for a in self.addresses],
                "problems": [p.to_dict() for p in self.dns_problems],
            },
            "http-01": {
                "results": [r.to_dict() for r in self.http_results],
                "problems": [p.to_dict() for p in self.http_problems],
            },
            "caa": {"problems": [p.to_dict() for p in self.caa_problems]},
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "checks": self.checks(),
            "problems": [p.to_dict() for p in self.problems],
        }


class PreflightRunner:
    def __init__(
        self,
        lookup: Lookup,
        http_checker: Optional[HTTP01Simulator],
        caa_checker: Optional[CAAChecker],
        max_workers: int = 8,
    ) -> None:
        self.lookup = lookup
        self.http_checker = http_checker
        self.caa_checker = caa_checker
        self.max_workers = max(1, int(max_workers))

    def run(self, domain: str, addresses: Optional[Sequence[IPAddress]] = None) -> DomainReport:
        name = normalize_target(domain)
        base, wildcard = split_wildcard(name)
        report = DomainReport(domain=name)

        probe_http = self.http_checker is not None
        if probe_http and wildcard:
            report.http_problems.append(method_not_suitable(name))
            probe_http = False

        if probe_http:
            if addresses:
                report.addresses = list(addresses)
            else:
                report.addresses, report.dns_problems = resolve_addresses(self.lookup, base)
                if not report.addresses and not report.dns_problems:
                    report.dns_problems.append(no_records(base))

        with ThreadPoolExecutor(max_workers=self.max_workers) as ex:
            caa_future = ex.submit(self._check_caa, name) if self.caa_checker is not None else None
            http_futures = [ex.submit(self.http_checker.check, base, ip) for ip in report.addresses] if probe_http else []

            # keep address order (AAAA first) in the report
            for fut in http_futures:
                result, problem = fut.result()
                report.http_results.append(result)
                if problem is not None:
                    report.http_problems.append(problem)

            if caa_future is not None:
                report.caa_problems.extend(caa_future.result())

        logger.info("%s: %d problem(s)", name, len(report.problems))
        return report

    def _check_caa(self, name: str) -> List[Problem]:
        try:
            return self.caa_checker.check(name)
        except CAACheckError as e:
            logger.warning("CAA check for %s failed: %s", name, e)
            return [internal_problem(f"An internal error occurred while checking the domain: {e}")]
