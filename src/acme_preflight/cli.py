import argparse
import json
from typing import Any, Dict, List, Optional

import pandas as pd

from caa import CAAChecker
from dnslookup import DNSLookup
from http01 import HTTP01Simulator
from reporting.assembler import Assemble

# Input validation/normalization shared with app.py.
from reporting.targets import InvalidTarget, require_address, require_domain

from .config import Config, load_config
from .logs import configure_logging
from .runner import PreflightRunner

"""
The command-line interface for the ACME preflight checks (HTTP-01 + CAA)
It mirrors the flow of the API:
  1) Validate + normalize each user-provided domain/address
  2) Run checkers
  3) Assemble the results into a single JSON-safe response using Assemble.build()
"""

VERSION = "0.1"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Diagnose why ACME HTTP-01 / CAA validation would fail")
    p.add_argument("domains", nargs="+", help="Domain names (e.g., example.com or *.example.com)")
    p.add_argument("--address", action="append", default=[],
                   help="Probe this IP instead of resolving A/AAAA (repeatable)")
    p.add_argument("--issuer", help="CA issuer domain expected in CAA records")
    p.add_argument("--timeout", type=float, help="HTTP-01 timeout in seconds (whole fetch)")
    p.add_argument("--max-redirects", type=int, help="Redirects the validation agent follows")
    p.add_argument("--user-agent", help="User-Agent sent with the validation request")
    p.add_argument("--nameserver", action="append", default=[], help="Recursive resolver to use (repeatable)")
    p.add_argument("--no-caa", action="store_true", help="Disable CAA checks")
    p.add_argument("--no-http", action="store_true", help="Disable HTTP-01 checks")
    p.add_argument("--json", dest="as_json", action="store_true", help="Output JSON")
    p.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING, ...)")
    return p.parse_args(argv)


def apply_overrides(cfg: Config, args: argparse.Namespace) -> Config:
    if args.issuer:
        cfg.issuer_domain = args.issuer
    if args.timeout is not None:
        cfg.http_timeout = args.timeout
    if args.max_redirects is not None:
        cfg.max_redirects = args.max_redirects
    if args.user_agent:
        cfg.user_agent = args.user_agent
    if args.nameserver:
        cfg.nameservers = list(args.nameserver)
    if args.log_level:
        cfg.log_level = args.log_level
    return cfg


def validate_targets(raw_domains: List[str], raw_addresses: List[str]):
    """
    Validate + normalize all domains and addresses.

    We validate everything first so errors are reported together and we don't do partial work.

    Raises:
        SystemExit(2): if any input is invalid.
    """
    domains: List[str] = []
    addresses = []
    errors: List[str] = []

    for d in raw_domains:
        try:
            domains.append(require_domain(d))
        except InvalidTarget as e:
            errors.append(f"{d}: {e}")

    for a in raw_addresses:
        try:
            addresses.append(require_address(a))
        except InvalidTarget as e:
            errors.append(f"{a}: {e}")

    if errors:
        for e in errors:
            print(f"Invalid input: {e}")
        raise SystemExit(2)

    return domains, addresses


def build_runner(cfg: Config, enable_http: bool = True, enable_caa: bool = True) -> PreflightRunner:
    lookup = DNSLookup(
        nameservers=cfg.nameservers,
        port=cfg.resolver_port,
        timeout=cfg.dns_timeout,
        lifetime=cfg.dns_lifetime,
    )
    http = HTTP01Simulator(
        timeout_seconds=cfg.http_timeout,
        max_redirects=cfg.max_redirects,
        user_agent=cfg.user_agent,
        token=cfg.challenge_token,
    ) if enable_http else None
    caa = CAAChecker(lookup, issuer_domain=cfg.issuer_domain) if enable_caa else None
    return PreflightRunner(lookup, http, caa, max_workers=cfg.max_workers)


def problems_frame(response: Dict[str, Any]) -> pd.DataFrame:
    rows = [
        {
            "severity": p.get("severity"),
            "check": p.get("check"),
            "name": p.get("name"),
            "detail": (p.get("detail") or "").replace("\n", " | "),
        }
        for p in response.get("problems") or []
    ]
    return pd.DataFrame(rows, columns=["severity", "check", "name", "detail"])


def print_human(response: Dict[str, Any]) -> None:
    target = response.get("target", "")
    summary = response.get("summary") or {}

    print(f"\n== {target} ==")
    print(
        f"Overall: {summary.get('overall', 'unknown')} | "
        f"Fatal: {summary.get('Fatal', 0)} | "
        f"Error: {summary.get('Error', 0)} | "
        f"Warning: {summary.get('Warning', 0)} | "
        f"Debug: {summary.get('Debug', 0)}"
    )

    df = problems_frame(response)
    if df.empty:
        print("No problems.")
        return

    print(df.to_string(index=False))
    for p in response.get("problems") or []:
        print(f"\n[{p.get('severity')}] {p.get('name')}: {p.get('explanation')}")
        if p.get("recommendation"):
            print(f"    Recommendation: {p['recommendation']}")


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entrypoint.

    Returns:
        Process exit code: 0 = no blocking problem, 1 = at least one Fatal/Error problem.
    """
    args = parse_args(argv)
    cfg = apply_overrides(load_config(), args)
    configure_logging(cfg.log_level)

    domains, addresses = validate_targets(args.domains, args.address)

    runner = build_runner(cfg, enable_http=not args.no_http, enable_caa=not args.no_caa)
    assembler = Assemble()

    results: List[Dict[str, Any]] = []
    for domain in domains:
        report = runner.run(domain, addresses=addresses or None)
        results.append(
            assembler.build(
                target=domain,
                checks=report.checks(),
                meta={"version": VERSION, "source": "cli", "issuer": cfg.issuer_domain},
            )
        )

    if args.as_json:
        print(json.dumps({"targets": domains, "results": results}, indent=2))
    else:
        for r in results:
            print_human(r)

    broken = any((r.get("summary") or {}).get("overall") == "broken" for r in results)
    return 1 if broken else 0


if __name__ == "__main__":
    raise SystemExit(main())
