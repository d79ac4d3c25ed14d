# test_cli.py
from __future__ import annotations

import json
from typing import List, Optional

import pytest

import acme_preflight.cli as cli
from acme_preflight.config import load_config
from acme_preflight.runner import DomainReport
from reporting.problems import Problem, Severity


class FakeRunner:
    """Returns a canned report per domain and records what it was asked."""

    def __init__(self, problems: Optional[dict] = None):
        self.problems = problems or {}
        self.calls: List[tuple] = []

    def run(self, domain, addresses=None):
        self.calls.append((domain, addresses))
        return DomainReport(domain=domain, caa_problems=list(self.problems.get(domain, [])))


@pytest.fixture
def fake_runner(monkeypatch):
    holder = {}

    def install(problems=None):
        runner = FakeRunner(problems)

        def build_runner(cfg, enable_http=True, enable_caa=True):
            holder["cfg"] = cfg
            holder["flags"] = (enable_http, enable_caa)
            return runner

        monkeypatch.setattr(cli, "build_runner", build_runner)
        return runner, holder

    return install


def test_json_output_and_ok_exit(fake_runner, capsys):
    runner, _ = fake_runner()

    code = cli.main(["Example.com", "--json"])

    out = json.loads(capsys.readouterr().out)
    assert code == 0
    assert out["targets"] == ["example.com"]
    assert out["results"][0]["summary"]["overall"] == "ok"
    assert out["results"][0]["meta"]["source"] == "cli"
    assert runner.calls == [("example.com", None)]


def test_blocking_problem_exits_one_and_prints_recommendation(fake_runner, capsys):
    blocked = Problem("CaaIssuanceNotAllowed", "No CAA record authorizes the issuer", '0 issue "x"', Severity.FATAL)
    fake_runner({"example.com": [blocked]})

    code = cli.main(["example.com"])

    out = capsys.readouterr().out
    assert code == 1
    assert "Overall: broken" in out
    assert "CaaIssuanceNotAllowed" in out
    assert "Recommendation:" in out


def test_invalid_input_exits_two_before_running(fake_runner, capsys):
    runner, _ = fake_runner()

    with pytest.raises(SystemExit) as exc:
        cli.main(["bad..name", "--address", "not-an-ip"])

    assert exc.value.code == 2
    out = capsys.readouterr().out
    assert out.count("Invalid input:") == 2
    assert runner.calls == []


def test_flags_override_config(fake_runner, monkeypatch, capsys):
    monkeypatch.setenv("ACME_PREFLIGHT_ISSUER_DOMAIN", "pki.goog")
    runner, holder = fake_runner()

    cli.main([
        "example.com", "--address", "192.0.2.1", "--timeout", "3", "--max-redirects", "2",
        "--nameserver", "9.9.9.9", "--no-caa", "--json",
    ])

    cfg = holder["cfg"]
    assert cfg.issuer_domain == "pki.goog"
    assert cfg.http_timeout == 3.0
    assert cfg.max_redirects == 2
    assert cfg.nameservers == ["9.9.9.9"]
    assert holder["flags"] == (True, False)
    assert str(runner.calls[0][1][0]) == "192.0.2.1"


def test_load_config_reads_environment():
    cfg = load_config({
        "ACME_PREFLIGHT_NAMESERVERS": "1.1.1.1, 8.8.8.8",
        "ACME_PREFLIGHT_HTTP_TIMEOUT": "5",
        "ACME_PREFLIGHT_MAX_REDIRECTS": "3",
    })

    assert cfg.nameservers == ["1.1.1.1", "8.8.8.8"]
    assert cfg.http_timeout == 5.0
    assert cfg.max_redirects == 3
    assert cfg.issuer_domain == "letsencrypt.org"


def test_problems_frame_flattens_details():
    response = {
        "problems": [
            {"severity": "Fatal", "check": "caa", "name": "CaaCriticalUnknown", "detail": "a\nb"},
        ]
    }

    df = cli.problems_frame(response)

    assert list(df.columns) == ["severity", "check", "name", "detail"]
    assert df.iloc[0]["detail"] == "a | b"
    assert cli.problems_frame({"problems": []}).empty
