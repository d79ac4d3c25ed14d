"""
Configuration for the preflight checks.

Loads settings from environment variables with sensible defaults; the CLI
overrides individual values from its flags.
"""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from caa.ca_policy import DEFAULT_ISSUER_DOMAIN
from http01.tool import DEFAULT_MAX_REDIRECTS, DEFAULT_TIMEOUT_SECONDS, DEFAULT_TOKEN, DEFAULT_USER_AGENT

ENV_PREFIX = "ACME_PREFLIGHT_"


@dataclass
class Config:
    # DNS collaborator; empty nameservers means the system resolver configuration
    nameservers: List[str] = field(default_factory=list)
    resolver_port: int = 53
    dns_timeout: float = 2.0
    dns_lifetime: float = 4.0

    # HTTP-01 simulation
    http_timeout: float = DEFAULT_TIMEOUT_SECONDS
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    user_agent: str = DEFAULT_USER_AGENT
    challenge_token: str = DEFAULT_TOKEN

    # CAA
    issuer_domain: str = DEFAULT_ISSUER_DOMAIN

    log_level: str = "WARNING"
    max_workers: int = 8


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    env = os.environ if environ is None else environ

    def get(name: str, default: str) -> str:
        return env.get(ENV_PREFIX + name, default)

    defaults = Config()
    nameservers = [x.strip() for x in get("NAMESERVERS", "").split(",") if x.strip()]

    return Config(
        nameservers=nameservers,
        resolver_port=int(get("RESOLVER_PORT", str(defaults.resolver_port))),
        dns_timeout=float(get("DNS_TIMEOUT", str(defaults.dns_timeout))),
        dns_lifetime=float(get("DNS_LIFETIME", str(defaults.dns_lifetime))),
        http_timeout=float(get("HTTP_TIMEOUT", str(defaults.http_timeout))),
        max_redirects=int(get("MAX_REDIRECTS", str(defaults.max_redirects))),
        user_agent=get("USER_AGENT", defaults.user_agent),
        challenge_token=get("CHALLENGE_TOKEN", defaults.challenge_token),
        issuer_domain=get("ISSUER_DOMAIN", defaults.issuer_domain),
        log_level=get("LOG_LEVEL", defaults.log_level),
        max_workers=int(get("MAX_WORKERS", str(defaults.max_workers))),
    )
