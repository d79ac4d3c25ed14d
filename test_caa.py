# test_caa.py
from __future__ import annotations

from typing import Dict, List, Tuple, Union

import pytest

from caa import CAACheckError, CAAChecker
from caa.ca_policy import CAARecord, PublicSuffixBoundary, ancestors, extract_issuer_domain
from dnslookup import DNSLookupError
from reporting.problems import Severity


# ----------------------------
# Fake DNS collaborator
# ----------------------------
class FakeLookup:
    """
    Scripted CAA answers keyed by name. Unlisted names have no CAA records.
    A value that is an exception instance is raised instead of answered.
    """

    def __init__(self, answers: Dict[str, Union[List[str], BaseException]]):
        self.answers = answers
        self.calls: List[Tuple[str, str]] = []

    def lookup(self, name: str, rdtype: str) -> List[str]:
        if rdtype != "CAA":
            raise AssertionError(f"Unexpected lookup: {name}/{rdtype}")
        self.calls.append((name, rdtype))
        value = self.answers.get(name, [])
        if isinstance(value, BaseException):
            raise value
        return list(value)

    @property
    def names(self) -> List[str]:
        return [n for n, _ in self.calls]


def checker(answers, **kwargs) -> Tuple[CAAChecker, FakeLookup]:
    lookup = FakeLookup(answers)
    return CAAChecker(lookup, **kwargs), lookup


# ----------------------------
# Inheritance walk
# ----------------------------
def test_no_caa_anywhere_is_permissive():
    c, lookup = checker({})

    assert c.check("a.b.example.com") == []
    assert lookup.names == ["a.b.example.com", "b.example.com", "example.com", "com"]


def test_walk_stops_at_first_level_with_records():
    c, lookup = checker({"b.example.com": ['0 issue "letsencrypt.org"']})

    assert c.check("a.b.example.com") == []
    assert lookup.names == ["a.b.example.com", "b.example.com"]


def test_inherited_policy_that_excludes_issuer_is_reported_at_that_level():
    c, lookup = checker({"example.com": ['0 issue "digicert.com"']})

    problems = c.check("www.example.com")

    assert [p.name for p in problems] == ["CaaIssuanceNotAllowed"]
    assert "No CAA record on example.com (wildcard=false)" in problems[0].explanation
    assert problems[0].detail == '0 issue "digicert.com"'
    assert lookup.names == ["www.example.com", "example.com"]


def test_walk_stops_at_multi_label_public_suffix():
    c, lookup = checker({})

    assert c.check("shop.example.co.uk") == []
    assert lookup.names == ["shop.example.co.uk", "example.co.uk", "co.uk"]


def test_trailing_dot_and_case_are_normalized():
    c, lookup = checker({"example.com": ['0 issue "letsencrypt.org"']})

    assert c.check("WWW.Example.COM.") == []
    assert lookup.names == ["www.example.com", "example.com"]


# ----------------------------
# Record evaluation
# ----------------------------
def test_critical_unknown_blocks_even_when_issuer_is_authorized():
    c, _ = checker({
        "example.com": [
            '0 issue "letsencrypt.org"',
            '1 tbs "unknown"',
            '0 issuewild "letsencrypt.org"',
        ]
    })

    problems = c.check("example.com")

    assert len(problems) == 1
    assert problems[0].name == "CaaCriticalUnknown"
    assert problems[0].severity is Severity.FATAL
    assert problems[0].detail == '1 tbs "unknown"'


def test_issuer_critical_bit_128_is_also_critical():
    c, _ = checker({"example.com": ['0 issue "letsencrypt.org"', '128 future "x"', '129 other "y"']})

    problems = c.check("example.com")

    assert [p.name for p in problems] == ["CaaCriticalUnknown"]
    assert problems[0].detail == '128 future "x"\n129 other "y"'


def test_non_critical_unknown_tags_and_iodef_are_ignored():
    c, _ = checker({"example.com": ['0 tbs "whatever"', '0 iodef "mailto:sec@example.com"']})

    assert c.check("example.com") == []


def test_issuewild_only_does_not_restrict_non_wildcard_names():
    c, _ = checker({"example.com": ['0 issuewild "digicert.com"']})

    assert c.check("example.com") == []


def test_wildcard_uses_issuewild_over_issue():
    c, _ = checker({
        "example.com": [
            '0 issue "letsencrypt.org"',
            '0 issuewild "digicert.com"',
        ]
    })

    problems = c.check("*.example.com")

    assert [p.name for p in problems] == ["CaaIssuanceNotAllowed"]
    assert "(wildcard=true)" in problems[0].explanation
    # only the applicable (issuewild) set is listed
    assert problems[0].detail == '0 issuewild "digicert.com"'


def test_wildcard_falls_back_to_issue_when_no_issuewild():
    c, _ = checker({"example.com": ['0 issue "letsencrypt.org"']})

    assert c.check("*.example.com") == []


def test_wildcard_flag_can_be_passed_explicitly():
    c, lookup = checker({"example.com": ['0 issue "letsencrypt.org"', '0 issuewild ";"']})

    problems = c.check("example.com", wildcard=True)

    assert [p.name for p in problems] == ["CaaIssuanceNotAllowed"]
    assert lookup.names == ["example.com"]


def test_wildcard_is_kept_while_walking_up():
    c, lookup = checker({"example.com": ['0 issue "letsencrypt.org"', '0 issuewild "digicert.com"']})

    problems = c.check("*.www.example.com")

    assert [p.name for p in problems] == ["CaaIssuanceNotAllowed"]
    assert lookup.names == ["www.example.com", "example.com"]


def test_wildcard_without_any_issuance_records_is_not_allowed():
    c, _ = checker({"example.com": ['0 iodef "mailto:sec@example.com"']})

    problems = c.check("*.example.com")

    assert [p.name for p in problems] == ["CaaIssuanceNotAllowed"]
    assert problems[0].detail == ""


def test_issue_set_without_issuer_is_not_allowed():
    c, _ = checker({"example.com": ['0 issue "digicert.com"', '0 issue "sectigo.com"']})

    problems = c.check("example.com")

    assert [p.name for p in problems] == ["CaaIssuanceNotAllowed"]
    assert problems[0].severity is Severity.FATAL
    assert problems[0].detail == '0 issue "digicert.com"\n0 issue "sectigo.com"'


def test_empty_issue_value_forbids_everyone():
    c, _ = checker({"example.com": ['0 issue ";"']})

    assert [p.name for p in c.check("example.com")] == ["CaaIssuanceNotAllowed"]


def test_issuer_with_parameters_and_odd_case_is_authorized():
    c, _ = checker({"example.com": ['0 issue "LetsEncrypt.org; validationmethods=http-01"']})

    assert c.check("example.com") == []


def test_issuer_domain_can_be_changed():
    c, _ = checker({"example.com": ['0 issue "pki.goog"']}, issuer_domain="pki.goog")

    assert c.check("example.com") == []
    problems = c.check("example.com", issuer_domain="letsencrypt.org")
    assert [p.name for p in problems] == ["CaaIssuanceNotAllowed"]
    assert '"letsencrypt.org"' in problems[0].explanation


def test_unparseable_rdata_still_ends_the_walk():
    c, lookup = checker({"www.example.com": ["\\# 3 000000"]})

    assert c.check("www.example.com") == []
    assert lookup.names == ["www.example.com"]


# ----------------------------
# Failures
# ----------------------------
def test_lookup_failure_is_reported_and_stops_the_walk():
    c, lookup = checker({"b.example.com": DNSLookupError("b.example.com", "CAA", "SERVFAIL")})

    problems = c.check("a.b.example.com")

    assert [p.name for p in problems] == ["DNSLookupFailed"]
    assert problems[0].severity is Severity.FATAL
    assert "b.example.com/CAA" in problems[0].explanation
    assert "SERVFAIL" in problems[0].detail
    assert lookup.names == ["a.b.example.com", "b.example.com"]


def test_unexpected_collaborator_error_is_an_evaluator_error():
    c, _ = checker({"example.com": RuntimeError("resolver exploded")})

    with pytest.raises(CAACheckError) as exc:
        c.check("www.example.com")

    assert "example.com" in str(exc.value)
    assert isinstance(exc.value.__cause__, RuntimeError)


# ----------------------------
# Policy helpers
# ----------------------------
@pytest.mark.parametrize(
    "value, expected",
    [
        ("letsencrypt.org; validationmethods=http-01", "letsencrypt.org"),
        ("letsencrypt.org", "letsencrypt.org"),
        ("\t letsencrypt.org \t;accounturi=https://x/1", "letsencrypt.org"),
        (";", ""),
        ("", ""),
    ],
)
def test_extract_issuer_domain(value, expected):
    assert extract_issuer_domain(value) == expected


def test_parse_caa_record():
    r = CAARecord.parse('0 issue "letsencrypt.org; validationmethods=http-01"')
    assert r == CAARecord(0, "issue", "letsencrypt.org; validationmethods=http-01")
    assert not r.critical

    r = CAARecord.parse("128 IODEF mailto:x@example.com")
    assert r == CAARecord(128, "iodef", "mailto:x@example.com")
    assert r.critical

    assert CAARecord.parse("issue letsencrypt.org") is None
    assert CAARecord.parse("") is None


def test_ancestors():
    assert list(ancestors("a.b.example.com.")) == ["a.b.example.com", "b.example.com", "example.com", "com"]


@pytest.mark.parametrize(
    "name, boundary",
    [
        ("com", True),
        ("example.com", False),
        ("co.uk", True),
        ("example.co.uk", False),
        ("localhost", True),
        ("host.unknown-tld-for-tests", False),
        ("unknown-tld-for-tests", True),
    ],
)
def test_public_suffix_boundary(name, boundary):
    assert PublicSuffixBoundary().is_boundary(name) is boundary
