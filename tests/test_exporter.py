"""Tests for report rendering."""

import csv
import io
import json
import tempfile
from pathlib import Path

import pytest

from subscan.core.config import ConfigurationError
from subscan.core.exporter import (
    ReportExporter,
    format_probe_records,
    format_report,
    is_valid_format,
)
from subscan.models.finding import Finding, FindingKind
from subscan.models.host import HostResult
from subscan.models.scan import ScanReport


def _report() -> ScanReport:
    takeover = Finding(
        kind=FindingKind.TAKEOVER,
        description="Subdomain Takeover (Heroku)",
        tag="TAKEOVER-CANDIDATE",
        provider="Heroku",
    )
    bucket = Finding(
        kind=FindingKind.PUBLIC_BUCKET,
        description="Public S3 Bucket",
        tag="PUBLIC-S3",
        objects=["backup.sql"],
    )
    env = Finding(
        kind=FindingKind.EXPOSED_FILE,
        description="Exposed Environment Variables File",
        tag="EXPOSED-.ENV",
        path="/.env",
    )
    return ScanReport(results=[
        HostResult(
            hostname="app.example.com",
            position=1,
            alias_chain=["foo.herokuapp.com"],
            status_code=404,
            content_length=2048,
            scheme="https",
            cloud_provider="Heroku",
            findings=[takeover, env],
            tags=["Heroku", "404", "2KB", "TAKEOVER-CANDIDATE", "EXPOSED-.ENV"],
            score=2.2,
        ),
        HostResult(
            hostname="assets.example.com",
            position=2,
            alias_chain=["assets.s3.amazonaws.com"],
            status_code=200,
            content_length=512,
            scheme="http",
            findings=[bucket],
            tags=["200", "PUBLIC-S3"],
            score=2.0,
        ),
        HostResult(hostname="<b>down</b>.example.com", position=0, tags=["NO-HTTP"], score=1.0),
    ])


class TestFormats:
    """Tests for format selection."""

    def test_valid_formats(self):
        for fmt in ("plain", "json", "csv", "html", "markdown"):
            assert is_valid_format(fmt)
        assert not is_valid_format("xml")

    def test_unsupported_format(self):
        with pytest.raises(ConfigurationError):
            format_report(_report(), "xml")
        with pytest.raises(ConfigurationError):
            format_probe_records([], "yaml")


class TestScoreReport:
    """Tests for scored report rendering."""

    def test_plain(self):
        lines = format_report(_report(), "plain").splitlines()
        assert lines[0] == (
            "[Heroku][404][2KB][TAKEOVER-CANDIDATE][EXPOSED-.ENV] app.example.com [404] (2 KB)"
            " [Cloud: Heroku] [CNAME: foo.herokuapp.com]"
        )
        assert lines[1].endswith("assets.example.com [200] (512 bytes) [CNAME: assets.s3.amazonaws.com]")
        assert lines[2] == "[NO-HTTP] <b>down</b>.example.com [?]"

    def test_json(self):
        rows = json.loads(format_report(_report(), "json"))
        assert rows[0]["domain"] == "app.example.com"
        assert rows[0]["cname"] == "foo.herokuapp.com"
        assert rows[0]["is_tls"] is True
        assert "cloud_provider" not in rows[1]

    def test_csv(self):
        rows = list(csv.reader(io.StringIO(format_report(_report(), "csv"))))
        assert rows[0] == ["Domain", "Status", "ContentLength", "CNAME", "CloudProvider", "Score", "Tags", "IsTLS"]
        assert rows[1][0] == "app.example.com"
        assert rows[1][5] == "2.20"
        assert rows[1][7] == "true"
        assert len(rows) == 4

    def test_html_escapes(self):
        html = format_report(_report(), "html", target="example.com")
        assert "Subscan Results for example.com" in html
        assert "&lt;b&gt;down&lt;/b&gt;.example.com" in html
        assert "<b>down</b>" not in html

    def test_markdown(self):
        md = format_report(_report(), "markdown", target="example.com")
        assert md.startswith("# Subscan Results for example.com")
        assert "| Domain | Status | Size | CNAME | Score | Tags |" in md
        assert "foo.herokuapp.com (`Heroku`)" in md


class TestProbeRecords:
    """Tests for probe record rendering."""

    def test_record_projection(self):
        records = _report().probe_records()
        app, assets, down = records

        assert app.is_takeover
        assert app.exposed_files == ["/.env"]
        assert app.vulnerabilities == ["Subdomain Takeover (Heroku)", "Exposed Environment Variables File"]
        assert assets.s3_public
        assert assets.exposed_files == ["backup.sql"]
        assert down.vulnerabilities == []

    def test_csv_columns(self):
        out = format_probe_records(_report().probe_records(), "csv")
        rows = list(csv.reader(io.StringIO(out)))
        assert rows[0] == [
            "Domain", "CNAME", "HTTPStatus", "ContentLength", "IsTakeover", "S3Public", "S3Private",
            "ExposedFiles", "OpenRedirect", "RedirectURL", "Vulnerabilities", "Tags",
        ]
        assert rows[1][4] == "true"
        assert rows[1][10] == "Subdomain Takeover (Heroku)|Exposed Environment Variables File"

    def test_json_omits_empty_optionals(self):
        rows = json.loads(format_probe_records(_report().probe_records(), "json"))
        assert rows[0]["domain"] == "app.example.com"
        assert "redirect_url" not in rows[0]

    def test_markdown_lists_only_vulnerable(self):
        md = format_probe_records(_report().probe_records(), "markdown")
        assert "| Takeover candidates | 1 |" in md
        assert "| S3 bucket issues | 1 |" in md
        assert "### app.example.com" in md
        assert "### <b>down</b>.example.com" not in md

    def test_html_stats(self):
        html = format_probe_records(_report().probe_records(), "html")
        assert "Takeover Candidates" in html
        assert '<span class="tag warning">TAKEOVER-CANDIDATE</span>' in html

    def test_plain(self):
        out = format_probe_records(_report().probe_records(), "plain")
        assert "[!] app.example.com: Subdomain Takeover (Heroku), Exposed Environment Variables File" in out
        assert "[+] <b>down</b>.example.com: No issues found" in out


class TestReportExporter:
    """Tests for writing reports to disk."""

    def test_export_files(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            exporter = ReportExporter(Path(tmpdir) / "out")

            score_path = exporter.export(_report(), "html", target="example.com")
            probe_path = exporter.export(_report().probe_records(), "json")

            assert score_path.name == "scores.html"
            assert probe_path.name == "probes.json"
            assert json.loads(probe_path.read_text())[0]["domain"] == "app.example.com"
