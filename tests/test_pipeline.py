"""Tests for takeover detection and the finding pipeline."""

import asyncio

import httpx
import pytest
from xml.etree import ElementTree

from subscan.core.config import ProbeConfig
from subscan.models.finding import FindingKind
from subscan.modules.scanning.pipeline import FindingPipeline, extract_bucket_keys
from subscan.modules.scanning.signatures import (
    DEFAULT_SIGNATURES,
    SensitiveFile,
    SignatureTables,
)
from subscan.modules.scanning.takeover import TAKEOVER_TAG, TakeoverDetector
from subscan.modules.validation.http_probe import HttpProber, ProbeResponse

from fakes import RoutedTransport

HEROKU_BODY = "<html><title>Heroku | No such app</title></html>"

BUCKET_LISTING = """<?xml version="1.0" encoding="UTF-8"?>
<ListBucketResult xmlns="http://s3.amazonaws.com/doc/2006-03-01/">
  <Name>assets</Name>
  <Contents><Key>a.txt</Key></Contents>
  <Contents><Key>b.txt</Key></Contents>
  <Contents><Key>c.txt</Key></Contents>
  <Contents><Key>d.txt</Key></Contents>
  <Contents><Key>e.txt</Key></Contents>
  <Contents><Key>f.txt</Key></Contents>
  <Contents><Key>g.txt</Key></Contents>
</ListBucketResult>"""


def _response(status=200, body=b"", location=None):
    return ProbeResponse(
        url="https://host",
        scheme="https",
        status_code=status,
        content_length=len(body),
        body=body,
        location=location,
    )


def _evaluate(host, chain, probe, routes=None, config=None, signatures=None):
    transport = RoutedTransport(routes or {})
    config = config or ProbeConfig()

    async def run():
        async with HttpProber(config, transport=transport.transport) as prober:
            pipeline = FindingPipeline(signatures, config, fetcher=prober)
            return await pipeline.evaluate(host, chain, probe)

    findings, tags = asyncio.run(run())
    return findings, tags, transport


class TestTakeoverDetector:
    """Tests for provider fingerprint matching."""

    def test_heroku_candidate(self):
        detector = TakeoverDetector()
        findings = detector.check("app.example.com", ["foo.herokuapp.com"], HEROKU_BODY)

        assert len(findings) == 1
        assert findings[0].kind == FindingKind.TAKEOVER
        assert findings[0].provider == "Heroku"
        assert findings[0].description == "Subdomain Takeover (Heroku)"
        assert findings[0].tag == TAKEOVER_TAG

    def test_alias_without_fingerprint(self):
        detector = TakeoverDetector()
        assert detector.check("app.example.com", ["foo.herokuapp.com"], "<h1>Welcome</h1>") == []

    def test_fingerprint_without_alias(self):
        detector = TakeoverDetector()
        assert detector.check("app.example.com", [], HEROKU_BODY) == []

    def test_empty_body(self):
        detector = TakeoverDetector()
        assert detector.check("app.example.com", ["foo.herokuapp.com"], "") == []

    def test_match_alias_any_hop(self):
        detector = TakeoverDetector()
        matches = detector.match_alias(["edge.example.net", "foo.herokuapp.com"])
        assert [(sig.provider, hop) for sig, hop in matches] == [("Heroku", "foo.herokuapp.com")]


class TestExtractBucketKeys:
    """Tests for bucket listing parsing."""

    def test_limit(self):
        assert extract_bucket_keys(BUCKET_LISTING, limit=5) == ["a.txt", "b.txt", "c.txt", "d.txt", "e.txt"]

    def test_without_namespace(self):
        body = "<ListBucketResult><Contents><Key>only.txt</Key></Contents></ListBucketResult>"
        assert extract_bucket_keys(body) == ["only.txt"]

    def test_malformed(self):
        with pytest.raises(ElementTree.ParseError):
            extract_bucket_keys("<ListBucketResult><Contents>")


class TestFindingPipeline:
    """Tests for stage ordering, evidence and budgets."""

    def test_unreachable_host_without_alias(self):
        """Test the zero-status sentinel with an empty chain yields nothing."""
        findings, tags, transport = _evaluate("ghost.example.com", [], ProbeResponse.unreachable())

        assert findings == []
        assert tags == []
        assert transport.requests == []

    def test_unreachable_host_with_alias(self):
        """Test a dangling alias with no HTTP answer does not crash or fetch."""
        findings, _, transport = _evaluate(
            "ghost.example.com", ["foo.herokuapp.com"], ProbeResponse.unreachable(),
        )
        assert findings == []
        assert transport.requests == []

    def test_takeover_tags(self):
        findings, tags, _ = _evaluate(
            "app.example.com",
            ["foo.herokuapp.com"],
            _response(404, HEROKU_BODY.encode()),
        )

        assert [f.kind for f in findings] == [FindingKind.TAKEOVER]
        assert tags == ["TAKEOVER-CANDIDATE", "Heroku"]

    def test_public_bucket(self):
        """Test a listing yields exactly one public bucket finding with up to five keys."""
        findings, tags, _ = _evaluate(
            "assets.example.com",
            ["assets.example.com.s3.amazonaws.com"],
            _response(200, BUCKET_LISTING.encode()),
        )

        buckets = [f for f in findings if f.kind == FindingKind.PUBLIC_BUCKET]
        assert len(buckets) == 1
        assert buckets[0].description == "Public S3 Bucket"
        assert buckets[0].objects == ["a.txt", "b.txt", "c.txt", "d.txt", "e.txt"]
        assert "PUBLIC-S3" in tags

    def test_public_bucket_malformed_listing(self):
        """Test an unparseable listing still reports the bucket."""
        findings, _, _ = _evaluate(
            "assets.example.com",
            ["assets.s3.amazonaws.com"],
            _response(200, b"<ListBucketResult><Contents>"),
        )

        buckets = [f for f in findings if f.kind == FindingKind.PUBLIC_BUCKET]
        assert len(buckets) == 1
        assert buckets[0].objects == []

    def test_private_bucket(self):
        findings, tags, _ = _evaluate(
            "files.example.com",
            ["files.s3.amazonaws.com"],
            _response(403, b"<Error><Code>AccessDenied</Code></Error>"),
        )

        assert findings[0].kind == FindingKind.PRIVATE_BUCKET
        assert not findings[0].is_vulnerability
        assert "PRIVATE-S3" in tags

    def test_unclaimed_bucket(self):
        findings, _, _ = _evaluate(
            "old.example.com",
            ["old.s3.amazonaws.com"],
            _response(404, b"<Error><Code>NoSuchBucket</Code></Error>"),
        )
        # Takeover stage runs first and sees the same dangling bucket
        assert [f.kind for f in findings] == [FindingKind.TAKEOVER, FindingKind.UNCLAIMED_BUCKET]
        assert findings[0].provider == "AWS/S3"
        assert findings[1].description == "Unclaimed S3 Bucket"

    def test_storage_markers_need_alias_or_listing(self):
        """Test AccessDenied on an unrelated host is not a bucket."""
        findings, _, _ = _evaluate(
            "www.example.com",
            [],
            _response(403, b"AccessDenied"),
            config=ProbeConfig(active_checks=False),
        )
        assert findings == []

    def test_exposed_env_file(self):
        """Test a served .env file with a secret marker is reported."""
        findings, tags, _ = _evaluate(
            "www.example.com",
            [],
            _response(200, b"<html></html>"),
            routes={
                "https://www.example.com/.env": httpx.Response(200, content=b"DB_PASSWORD=hunter2\n"),
            },
        )

        exposed = [f for f in findings if f.kind == FindingKind.EXPOSED_FILE]
        assert len(exposed) == 1
        assert exposed[0].path == "/.env"
        assert exposed[0].description == "Exposed Environment Variables File"
        assert "EXPOSED-.ENV" in tags

    def test_exposed_file_needs_signature(self):
        """Test a 200 without any content signature is ignored."""
        findings, _, _ = _evaluate(
            "www.example.com",
            [],
            _response(200, b"ok"),
            routes={"https://www.example.com/.env": httpx.Response(200, content=b"<html>home</html>")},
        )
        assert findings == []

    def test_open_redirect(self):
        """Test a redirect echoing the sentinel is reported once."""
        def redirect(request):
            target = request.url.params.get("url", "/")
            return httpx.Response(302, headers={"Location": target})

        findings, tags, transport = _evaluate(
            "login.example.com",
            [],
            _response(200, b"login"),
            routes={
                "https://login.example.com/redirect": redirect,
                "https://login.example.com/go": redirect,
            },
        )

        redirects = [f for f in findings if f.kind == FindingKind.OPEN_REDIRECT]
        assert len(redirects) == 1
        assert redirects[0].redirect_url == "https://login.example.com/redirect?url=https://evil.com"
        assert "OPEN-REDIRECT" in tags
        # Stops at the first confirmed redirect
        assert "/go" not in transport.paths_for("login.example.com")

    def test_redirect_elsewhere_ignored(self):
        findings, _, _ = _evaluate(
            "login.example.com",
            [],
            _response(200, b"login"),
            routes={"https://login.example.com/login": httpx.Response(302, headers={"Location": "/home"})},
        )
        assert findings == []

    def test_active_checks_disabled(self):
        """Test no requests are made when active checks are off."""
        findings, _, transport = _evaluate(
            "www.example.com",
            [],
            _response(200, b"ok"),
            config=ProbeConfig(active_checks=False),
        )
        assert findings == []
        assert transport.requests == []

    def test_finding_budget(self):
        """Test no more than the budget of findings is emitted and later stages are skipped."""
        files = tuple(
            SensitiveFile(f"/leak{i}", f"Leak {i}", ("SECRET",)) for i in range(10)
        )
        signatures = SignatureTables(
            takeovers=DEFAULT_SIGNATURES.takeovers,
            cloud_providers=DEFAULT_SIGNATURES.cloud_providers,
            sensitive_files=files,
            redirect_probes=DEFAULT_SIGNATURES.redirect_probes,
        )
        routes = {
            f"https://leaky.example.com/leak{i}": httpx.Response(200, content=b"SECRET=1")
            for i in range(10)
        }

        findings, _, transport = _evaluate(
            "leaky.example.com",
            [],
            _response(200, b"ok"),
            routes=routes,
            signatures=signatures,
        )

        assert len(findings) == 5
        assert all(f.kind == FindingKind.EXPOSED_FILE for f in findings)
        assert [f.path for f in findings] == [f"/leak{i}" for i in range(5)]
        assert len(transport.requests) == 5
