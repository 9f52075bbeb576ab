from __future__ import annotations

import asyncio
import json
from pathlib import Path

import httpx
import pytest
from click.testing import CliRunner
from factories import coverage, coverage_payload, hundred_lines

from apexcov.cli.main import cli
from apexcov.sfapi.connection import Connection

CONFIG = {
    "apiVersion": "60.0",
    "baseUrl": "https://org.example.com/",
    "clientId": "client-id",
    "clientSecret": "client-secret",
}

MANIFEST = """<?xml version="1.0" encoding="UTF-8"?>
<Package xmlns="http://soap.sforce.com/2006/04/metadata">
    <types>
        <members>Class1</members>
        <name>ApexClass</name>
    </types>
    <types>
        <members>Trigger1</members>
        <name>ApexTrigger</name>
    </types>
</Package>
"""


class OrgStub:
    """Routes tooling and data API calls the CLI makes to canned payloads."""

    def __init__(self, coverage_records: list[dict[str, object]]) -> None:
        self.coverage_records = coverage_records
        self.collection_batches: list[int] = []
        self.fail_batch_with: int | None = None
        self.queries: list[str] = []
        self.anonymous_result: dict[str, object] = {"compiled": True, "success": True}
        self.anonymous_bodies: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/services/oauth2/token":
            return httpx.Response(200, json={"access_token": "tok"})
        if path == "/services/data/v60.0/tooling/query/":
            soql = request.url.params["q"]
            self.queries.append(soql)
            if "FROM ApexCodeCoverage" in soql:
                return httpx.Response(200, json={"done": True, "records": self.coverage_records})
            return httpx.Response(200, json={"done": True, "records": []})
        if path == "/services/data/v60.0/tooling/executeAnonymous/":
            self.anonymous_bodies.append(request.url.params["anonymousBody"])
            return httpx.Response(200, json=self.anonymous_result)
        if path == "/services/data/v60.0/query/":
            return httpx.Response(
                200,
                json={
                    "done": True,
                    "records": [
                        {"attributes": {"type": "Account"}, "Id": "001", "Name": "Acme"}
                    ],
                },
            )
        if path == "/services/data/v60.0/composite/sobjects":
            records = json.loads(request.content)["records"]
            self.collection_batches.append(len(records))
            if self.fail_batch_with is not None and len(records) == self.fail_batch_with:
                return httpx.Response(500, text="server unavailable")
            return httpx.Response(
                200,
                json=[
                    {"id": f"001{index:03d}", "success": True, "errors": []}
                    for index in range(len(records))
                ],
            )
        return httpx.Response(404, text=f"unexpected path {path}")


class HangingOrg(OrgStub):
    """Answers the token request, then never answers a tooling query."""

    async def __call__(self, request: httpx.Request) -> httpx.Response:  # type: ignore[override]
        if request.url.path.endswith("/tooling/query/"):
            await asyncio.sleep(5)
        return super().__call__(request)


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("APEXCOV_LOG_LEVEL", "ERROR")
    (tmp_path / "config.json").write_text(json.dumps(CONFIG), encoding="utf-8")
    (tmp_path / "package.xml").write_text(MANIFEST, encoding="utf-8")
    return tmp_path


def _use_org(monkeypatch: pytest.MonkeyPatch, org: OrgStub) -> None:
    monkeypatch.setattr(
        "apexcov.cli.main.build_connection",
        lambda credentials, settings: Connection(
            credentials, transport=httpx.MockTransport(org)
        ),
    )


def _good_records() -> list[dict[str, object]]:
    class_covered, class_uncovered = hundred_lines(90)
    trigger_covered, trigger_uncovered = hundred_lines(75)
    return [
        coverage_payload(coverage("Class1_Test", "Class1", class_covered, class_uncovered)),
        coverage_payload(
            coverage(
                "Trigger1_Test", "Trigger1", trigger_covered, trigger_uncovered, trigger=True
            )
        ),
    ]


def test_tests_prints_selected_tests(workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    org = OrgStub(_good_records())
    _use_org(monkeypatch, org)
    result = CliRunner().invoke(cli, ["tests"])
    assert result.exit_code == 0, result.output
    assert result.stdout.strip() == "Class1_Test Trigger1_Test"
    assert any("IN ('Class1','Trigger1')" in soql for soql in org.queries)


def test_tests_reports_deficiencies_and_fails(
    workspace: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _use_org(monkeypatch, OrgStub(_good_records()[:1]))
    result = CliRunner().invoke(cli, ["tests"])
    assert result.exit_code == 1
    assert "coverage check failed:" in result.output
    assert "untested trigger Trigger1" in result.output


def test_tests_with_deps_strategy_queries_dependencies(
    workspace: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    org = OrgStub(_good_records())
    _use_org(monkeypatch, org)
    result = CliRunner().invoke(cli, ["tests", "--strategy", "MaxCoverageWithDeps"])
    assert result.exit_code == 0, result.output
    assert any("FROM MetadataComponentDependency" in soql for soql in org.queries)


def test_tests_without_apex_in_manifest_is_silent(
    workspace: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    org = OrgStub([])
    _use_org(monkeypatch, org)
    (workspace / "package.xml").write_text("<Package/>", encoding="utf-8")
    result = CliRunner().invoke(cli, ["tests"])
    assert result.exit_code == 0
    assert result.stdout == ""
    assert org.queries == []


def test_tests_rejects_unknown_strategy(workspace: Path) -> None:
    result = CliRunner().invoke(cli, ["tests", "--strategy", "Fastest"])
    assert result.exit_code == 1
    assert "unsupported strategy provided: Fastest" in result.output


def test_tests_reports_incomplete_config(workspace: Path) -> None:
    (workspace / "config.json").write_text(json.dumps({"apiVersion": "60.0"}), encoding="utf-8")
    result = CliRunner().invoke(cli, ["tests"])
    assert result.exit_code == 1
    assert "error reading config" in result.output
    assert "missing required parameters" in result.output


def test_invalid_batch_size_is_rejected(
    workspace: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("APEXCOV_BATCH_SIZE", "500")
    result = CliRunner().invoke(cli, ["tests"])
    assert result.exit_code == 1
    assert "batch" in result.output


def test_query_prints_records(workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _use_org(monkeypatch, OrgStub([]))
    result = CliRunner().invoke(cli, ["query", "SELECT Id, Name FROM Account"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout) == [
        {"attributes": {"type": "Account"}, "Id": "001", "Name": "Acme"}
    ]


def test_insert_splits_records_into_batches(
    workspace: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    org = OrgStub([])
    _use_org(monkeypatch, org)
    records_file = workspace / "records.json"
    records_file.write_text(
        json.dumps(
            [{"attributes": {"type": "Account"}, "Name": f"Acme {i}"} for i in range(250)]
        ),
        encoding="utf-8",
    )
    result = CliRunner().invoke(cli, ["insert", str(records_file)])
    assert result.exit_code == 0, result.output
    summary = json.loads(result.stdout)
    assert [item["created"] for item in summary] == [200, 50]
    assert sorted(org.collection_batches) == [50, 200]


def test_insert_reports_failed_batch(workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    org = OrgStub([])
    org.fail_batch_with = 50
    _use_org(monkeypatch, org)
    records_file = workspace / "records.json"
    records_file.write_text(
        json.dumps(
            [{"attributes": {"type": "Account"}, "Name": f"Acme {i}"} for i in range(250)]
        ),
        encoding="utf-8",
    )
    result = CliRunner().invoke(cli, ["insert", str(records_file)])
    assert result.exit_code == 1
    assert "1 batch failed" in result.output
    assert "batch 1 (records 200 to 250) failed" in result.output


def test_insert_rejects_non_list_file(workspace: Path) -> None:
    records_file = workspace / "records.json"
    records_file.write_text(json.dumps({"Name": "Acme"}), encoding="utf-8")
    result = CliRunner().invoke(cli, ["insert", str(records_file)])
    assert result.exit_code == 1
    assert "invalid records file" in result.output


def test_insert_rejects_records_without_type(
    workspace: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    org = OrgStub([])
    _use_org(monkeypatch, org)
    records_file = workspace / "records.json"
    records_file.write_text(
        json.dumps([{"attributes": {"type": "Account"}, "Name": "Acme"}, {"Name": "Untyped"}]),
        encoding="utf-8",
    )
    result = CliRunner().invoke(cli, ["insert", str(records_file)])
    assert result.exit_code == 1
    assert "records without attributes.type: 1" in result.output
    assert org.collection_batches == []


def test_tests_times_out_when_org_hangs(
    workspace: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("APEXCOV_OPERATION_TIMEOUT_SECONDS", "0.2")
    _use_org(monkeypatch, HangingOrg(_good_records()))
    result = CliRunner().invoke(cli, ["tests"])
    assert result.exit_code == 1
    assert "operation timed out after 0.2s" in result.output


def test_execute_runs_anonymous_apex(workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    org = OrgStub([])
    _use_org(monkeypatch, org)
    apex_file = workspace / "cleanup.apex"
    apex_file.write_text("delete [SELECT Id FROM Lead];\nSystem.debug('done');", encoding="utf-8")
    result = CliRunner().invoke(cli, ["execute", str(apex_file)])
    assert result.exit_code == 0, result.output
    assert result.stdout.strip() == "executed successfully"
    assert org.anonymous_bodies == ["delete [SELECT Id FROM Lead]; System.debug('done');"]


def test_execute_reports_apex_exception(workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    org = OrgStub([])
    org.anonymous_result = {
        "compiled": True,
        "success": False,
        "line": 3,
        "column": 5,
        "exceptionMessage": "System.NullPointerException: Attempt to de-reference a null object",
        "exceptionStackTrace": "AnonymousBlock: line 3, column 5",
    }
    _use_org(monkeypatch, org)
    apex_file = workspace / "broken.apex"
    apex_file.write_text("Account a;\na.Name = 'x';", encoding="utf-8")
    result = CliRunner().invoke(cli, ["execute", str(apex_file)])
    assert result.exit_code == 1
    assert "error on line 3:5 - System.NullPointerException" in result.output
