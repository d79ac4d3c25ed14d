# ca_policy.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Optional

import tldextract

DEFAULT_ISSUER_DOMAIN = "letsencrypt.org"

# RFC 8659 places the Issuer Critical flag at bit 0 counting from the most
# significant bit (value 128); some tooling writes it as 1.
CRITICAL_FLAG_BITS = 0x81


@dataclass(frozen=True)
class CAARecord:
    flag: int
    tag: str
    value: str

    @property
    def critical(self) -> bool:
        return bool(self.flag & CRITICAL_FLAG_BITS)

    def to_text(self) -> str:
        return f'{self.flag} {self.tag} "{self.value}"'

    @classmethod
    def parse(cls, rdata_text: str) -> Optional["CAARecord"]:
        """
        Parse CAA presentation text, e.g. `0 issue "letsencrypt.org; validationmethods=http-01"`.

        Returns None when the text is not a CAA rdata.
        """
        parts = (rdata_text or "").split(None, 2)
        if len(parts) < 2:
            return None
        try:
            flag = int(parts[0])
        except ValueError:
            return None
        tag = parts[1].strip().lower()
        value = parts[2].strip() if len(parts) > 2 else ""
        if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
            value = value[1:-1]
        return cls(flag=flag, tag=tag, value=value)


def extract_issuer_domain(value: str) -> str:
    # record can be: issuerdomain.tld; someparams
    return (value or "").split(";", 1)[0].strip(" \t")


def collate_records(records: List[CAARecord]) -> str:
    return "\n".join(r.to_text() for r in records)


def ancestors(name: str) -> Iterator[str]:
    """a.b.example.com -> a.b.example.com, b.example.com, example.com, com"""
    labels = [x for x in name.rstrip(".").split(".") if x]
    for i in range(len(labels)):
        yield ".".join(labels[i:])


class PublicSuffixBoundary:
    """
    Decides where the CAA inheritance walk stops.

    Uses the Public Suffix List snapshot bundled with tldextract (private
    suffixes included) so no network fetch is needed. Names under an unknown
    TLD fall back to the last label, like the PSL default rule "*".
    """

    def __init__(self, extractor: Optional[tldextract.TLDExtract] = None) -> None:
        self._extract = extractor or tldextract.TLDExtract(
            cache_dir=None,
            suffix_list_urls=(),
            fallback_to_snapshot=True,
            include_psl_private_domains=True,
        )

    def public_suffix(self, name: str) -> str:
        name = name.rstrip(".").lower()
        return self._extract(name).suffix or name.rsplit(".", 1)[-1]

    def is_boundary(self, name: str) -> bool:
        name = name.rstrip(".").lower()
        return name == self.public_suffix(name)
