"""
DNS lookups consumed by the checkers.

Public entrypoints: DNSLookup, DNSLookupError, resolve_addresses
"""

from .resolver import DNSLookup, DNSLookupError, Lookup, resolve_addresses

__all__ = ["DNSLookup", "DNSLookupError", "Lookup", "resolve_addresses"]
