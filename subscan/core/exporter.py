"""Report rendering for score and probe results."""

from __future__ import annotations

import csv
import io
import json
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from subscan.core.config import ConfigurationError
from subscan.core.logger import get_logger
from subscan.models.host import HostResult, ProbeRecord
from subscan.models.scan import ScanReport

logger = get_logger(__name__)

FORMAT_PLAIN = "plain"
FORMAT_JSON = "json"
FORMAT_CSV = "csv"
FORMAT_HTML = "html"
FORMAT_MARKDOWN = "markdown"

SUPPORTED_FORMATS = (FORMAT_PLAIN, FORMAT_JSON, FORMAT_CSV, FORMAT_HTML, FORMAT_MARKDOWN)

FILE_EXTENSIONS = {
    FORMAT_PLAIN: ".txt",
    FORMAT_JSON: ".json",
    FORMAT_CSV: ".csv",
    FORMAT_HTML: ".html",
    FORMAT_MARKDOWN: ".md",
}

# Tags highlighted in the probe HTML report
WARNING_TAGS = {"TAKEOVER-CANDIDATE", "PUBLIC-S3", "OPEN-REDIRECT"}

STYLE = """
        body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 1200px; margin: 0 auto; padding: 20px; }
        h1 { color: #2c3e50; border-bottom: 2px solid #eaecef; padding-bottom: 10px; }
        .summary { background-color: #f8f9fa; padding: 15px; border-radius: 5px; margin-bottom: 20px; }
        .stats { display: flex; flex-wrap: wrap; gap: 10px; margin-bottom: 20px; }
        .stat-box { background-color: #f8f8f8; border: 1px solid #ddd; border-radius: 5px; padding: 10px 15px; flex: 1; min-width: 150px; text-align: center; }
        .stat-box.warning { background-color: #fff3cd; border-color: #ffecb5; }
        .stat-box h3 { margin: 0; font-size: 14px; font-weight: normal; }
        .stat-box p { margin: 5px 0 0; font-size: 24px; font-weight: bold; }
        table { width: 100%; border-collapse: collapse; margin-bottom: 20px; }
        th, td { border: 1px solid #ddd; padding: 8px 12px; text-align: left; }
        th { background-color: #f2f2f2; }
        tr:nth-child(even) { background-color: #f9f9f9; }
        .has-issues { background-color: #fff8e1; }
        .has-issues td { border-left: 3px solid #ffc107; }
        .tag { display: inline-block; padding: 2px 6px; margin: 2px; border-radius: 3px; font-size: 12px; background-color: #e0e0e0; }
        .tag.warning { background-color: #ffd7d7; }
        .tag-200 { background-color: #8bc34a; color: white; }
        .tag-403 { background-color: #ff9800; color: white; }
        .tag-404 { background-color: #f44336; color: white; }
        .tag-500 { background-color: #9c27b0; color: white; }
        .tag-REDIRECT { background-color: #2196f3; color: white; }
        .tag-LARGE { background-color: #009688; color: white; }
        .tag-cloud { background-color: #3f51b5; color: white; }
        .vuln-list { margin: 0; padding-left: 20px; }
        footer { margin-top: 40px; text-align: center; font-size: 0.8em; color: #777; }
"""


def is_valid_format(fmt: str) -> bool:
    """Check whether ``fmt`` names a supported output format."""
    return fmt in SUPPORTED_FORMATS


def _check_format(fmt: str) -> None:
    if not is_valid_format(fmt):
        raise ConfigurationError(
            f"Unsupported output format: {fmt} (expected one of {', '.join(SUPPORTED_FORMATS)})"
        )


def escape_html(text: Optional[str]) -> str:
    """Escape HTML special characters."""
    if not text:
        return ""
    return (text
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;"))


def _timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def _size_label(content_length: int) -> str:
    if content_length <= 0:
        return ""
    kb = content_length // 1024
    if kb > 0:
        return f"{kb} KB"
    return f"{content_length} bytes"


# =============================================================================
# Score reports
# =============================================================================

def format_report(report: ScanReport, fmt: str, target: str = "") -> str:
    """
    Render a scored report.

    Args:
        report: Scan report in score order
        fmt: One of ``SUPPORTED_FORMATS``
        target: Target domain shown in HTML/Markdown headers

    Returns:
        Rendered report

    Raises:
        ConfigurationError: If the format is not supported
    """
    _check_format(fmt)
    results = report.results

    if fmt == FORMAT_PLAIN:
        return _report_plain(results)
    if fmt == FORMAT_JSON:
        return json.dumps([_report_row(r) for r in results], indent=2)
    if fmt == FORMAT_CSV:
        return _report_csv(results)
    if fmt == FORMAT_HTML:
        return _report_html(results, target)
    return _report_markdown(results, target)


def _report_row(result: HostResult) -> dict:
    row = {
        "domain": result.hostname,
        "status": result.status_code,
        "content_length": result.content_length,
        "cname": result.cname,
        "cloud_provider": result.cloud_provider,
        "score": result.score,
        "tags": result.tags,
        "is_tls": result.is_tls,
    }
    return {k: v for k, v in row.items() if v not in (None, [])}


def _report_plain(results: list[HostResult]) -> str:
    lines = []
    for result in results:
        tags = f"[{']['.join(result.tags)}] " if result.tags else ""
        status = str(result.status_code) if result.status_code > 0 else "?"
        size = _size_label(result.content_length)
        size = f" ({size})" if size else ""

        extra = ""
        if result.cloud_provider:
            extra += f" [Cloud: {result.cloud_provider}]"
        if result.cname:
            extra += f" [CNAME: {result.cname}]"

        lines.append(f"{tags}{result.hostname} [{status}]{size}{extra}")
    return "\n".join(lines) + ("\n" if lines else "")


def _report_csv(results: list[HostResult]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(["Domain", "Status", "ContentLength", "CNAME", "CloudProvider", "Score", "Tags", "IsTLS"])
    for result in results:
        writer.writerow([
            result.hostname,
            result.status_code,
            result.content_length,
            result.cname or "",
            result.cloud_provider or "",
            f"{result.score:.2f}",
            ",".join(result.tags),
            "true" if result.is_tls else "false",
        ])
    return buf.getvalue()


def _tag_class(tag: str) -> str:
    if tag in ("200", "403", "404", "500", "REDIRECT", "LARGE"):
        return f"tag tag-{tag}"
    return "tag"


def _report_html(results: list[HostResult], target: str) -> str:
    title = f"Subscan Results for {escape_html(target)}" if target else "Subscan Results"
    date = _timestamp()

    rows = ""
    for result in results:
        lock = '<span title="HTTPS Available">&#128274;</span> ' if result.is_tls else ""
        size = f"{result.content_length} bytes" if result.content_length > 0 else ""
        cloud = (
            f'<span class="tag tag-cloud">{escape_html(result.cloud_provider)}</span> '
            if result.cloud_provider else ""
        )
        tags = " ".join(
            f'<span class="{_tag_class(t)}">{escape_html(t)}</span>' for t in result.tags
        )
        row_class = ' class="has-issues"' if result.vulnerabilities else ""
        rows += f"""
            <tr{row_class}>
                <td>{lock}{escape_html(result.hostname)}</td>
                <td>{result.status_code}</td>
                <td>{size}</td>
                <td>{cloud}{escape_html(result.cname)}</td>
                <td>{result.score:.1f}</td>
                <td>{tags}</td>
            </tr>"""

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <style>{STYLE}    </style>
</head>
<body>
    <h1>{title}</h1>
    <div class="summary">
        <p><strong>Date:</strong> {date}</p>
        <p><strong>Target Domain:</strong> {escape_html(target)}</p>
        <p><strong>Subdomains Found:</strong> {len(results)}</p>
    </div>
    <table>
        <thead>
            <tr><th>Domain</th><th>Status</th><th>Size</th><th>CNAME</th><th>Score</th><th>Tags</th></tr>
        </thead>
        <tbody>{rows}
        </tbody>
    </table>
    <footer><p>Generated by Subscan on {date}</p></footer>
</body>
</html>
"""


def _report_markdown(results: list[HostResult], target: str) -> str:
    lines = [
        f"# Subscan Results for {target}",
        "",
        f"**Date:** {_timestamp()}  ",
        f"**Target Domain:** {target}  ",
        f"**Subdomains Found:** {len(results)}  ",
        "",
        "| Domain | Status | Size | CNAME | Score | Tags |",
        "|--------|--------|------|-------|-------|------|",
    ]
    for result in results:
        tls = "\U0001F512 " if result.is_tls else ""
        cname = result.cname or ""
        if result.cloud_provider:
            cname = f"{cname} (`{result.cloud_provider}`)"
        tags = " ".join(f"`{t}`" for t in result.tags)
        lines.append(
            f"| {tls}{result.hostname} | {result.status_code} | {_size_label(result.content_length)} "
            f"| {cname} | {result.score:.1f} | {tags} |"
        )
    lines.extend(["", "", "*Generated by Subscan*", ""])
    return "\n".join(lines)


# =============================================================================
# Probe records
# =============================================================================

def format_probe_records(records: list[ProbeRecord], fmt: str) -> str:
    """
    Render probe records.

    Args:
        records: Probe records in score order
        fmt: One of ``SUPPORTED_FORMATS``

    Returns:
        Rendered report

    Raises:
        ConfigurationError: If the format is not supported
    """
    _check_format(fmt)

    if fmt == FORMAT_PLAIN:
        return _probe_plain(records)
    if fmt == FORMAT_JSON:
        return json.dumps([r.to_dict() for r in records], indent=2)
    if fmt == FORMAT_CSV:
        return _probe_csv(records)
    if fmt == FORMAT_HTML:
        return _probe_html(records)
    return _probe_markdown(records)


def _probe_stats(records: list[ProbeRecord]) -> dict[str, int]:
    return {
        "total": len(records),
        "takeovers": sum(1 for r in records if r.is_takeover),
        "s3_issues": sum(1 for r in records if r.s3_public),
        "exposed_files": sum(1 for r in records if r.exposed_files),
        "open_redirects": sum(1 for r in records if r.open_redirect),
    }


def _probe_plain(records: list[ProbeRecord]) -> str:
    lines = []
    for record in records:
        if record.vulnerabilities:
            lines.append(f"[!] {record.domain}: {', '.join(record.vulnerabilities)}")
            if record.cname:
                lines.append(f"    CNAME: {record.cname}")
            for path in record.exposed_files:
                lines.append(f"    - {path}")
            if record.open_redirect and record.redirect_url:
                lines.append(f"    Redirect: {record.redirect_url}")
        else:
            lines.append(f"[+] {record.domain}: No issues found")
    return "\n".join(lines) + ("\n" if lines else "")


def _probe_csv(records: list[ProbeRecord]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow([
        "Domain", "CNAME", "HTTPStatus", "ContentLength", "IsTakeover", "S3Public", "S3Private",
        "ExposedFiles", "OpenRedirect", "RedirectURL", "Vulnerabilities", "Tags",
    ])
    for record in records:
        writer.writerow([
            record.domain,
            record.cname or "",
            record.status,
            record.content_length,
            str(record.is_takeover).lower(),
            str(record.s3_public).lower(),
            str(record.s3_private).lower(),
            "|".join(record.exposed_files),
            str(record.open_redirect).lower(),
            record.redirect_url or "",
            "|".join(record.vulnerabilities),
            "|".join(record.tags),
        ])
    return buf.getvalue()


def _probe_html(records: list[ProbeRecord]) -> str:
    stats = _probe_stats(records)
    date = _timestamp()

    def stat_box(label: str, value: int, warn: bool = True) -> str:
        css = "stat-box warning" if warn and value > 0 else "stat-box"
        return f'<div class="{css}"><h3>{label}</h3><p>{value}</p></div>'

    rows = ""
    for record in records:
        vulns = "".join(f"<li>{escape_html(v)}</li>" for v in record.vulnerabilities)

        details = ""
        if record.cname:
            details += f"<strong>CNAME:</strong> {escape_html(record.cname)}<br>"
        if record.status > 0:
            details += f"<strong>Status:</strong> {record.status}<br>"
        if record.content_length > 0:
            details += f"<strong>Size:</strong> {record.content_length} bytes<br>"
        if record.open_redirect:
            details += f"<strong>Redirect URL:</strong> {escape_html(record.redirect_url)}<br>"
        if record.exposed_files:
            files = "".join(f"<li>{escape_html(f)}</li>" for f in record.exposed_files)
            details += f'<strong>Exposed Files:</strong><ul class="vuln-list">{files}</ul>'

        tags = " ".join(
            f'<span class="tag{" warning" if t in WARNING_TAGS else ""}">{escape_html(t)}</span>'
            for t in record.tags
        )
        row_class = ' class="has-issues"' if record.vulnerabilities else ""
        rows += f"""
            <tr{row_class}>
                <td>{escape_html(record.domain)}</td>
                <td><ul class="vuln-list">{vulns}</ul></td>
                <td>{details}</td>
                <td>{tags}</td>
            </tr>"""

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Subscan Probe Results</title>
    <style>{STYLE}    </style>
</head>
<body>
    <h1>Subscan Probe Results</h1>
    <p>Generated on {date} by Subscan</p>
    <div class="stats">
        {stat_box("Total Domains", stats["total"], warn=False)}
        {stat_box("Takeover Candidates", stats["takeovers"])}
        {stat_box("S3 Bucket Issues", stats["s3_issues"])}
        {stat_box("Exposed Files", stats["exposed_files"])}
        {stat_box("Open Redirects", stats["open_redirects"])}
    </div>
    <h2>Vulnerability Details</h2>
    <table>
        <thead>
            <tr><th>Domain</th><th>Issues</th><th>Details</th><th>Tags</th></tr>
        </thead>
        <tbody>{rows}
        </tbody>
    </table>
    <footer><p>Generated by Subscan on {date}</p></footer>
</body>
</html>
"""


def _probe_markdown(records: list[ProbeRecord]) -> str:
    stats = _probe_stats(records)
    lines = [
        "# Subscan Probe Results",
        "",
        f"Generated on: {_timestamp()}",
        "",
        "## Summary",
        "",
        "| Category | Count |",
        "|----------|-------|",
        f"| Total domains | {stats['total']} |",
        f"| Takeover candidates | {stats['takeovers']} |",
        f"| S3 bucket issues | {stats['s3_issues']} |",
        f"| Exposed sensitive files | {stats['exposed_files']} |",
        f"| Open redirects | {stats['open_redirects']} |",
        "",
        "## Vulnerability Details",
        "",
    ]

    for record in records:
        if not record.vulnerabilities:
            continue

        lines.extend([f"### {record.domain}", ""])
        if record.cname:
            lines.extend([f"**CNAME:** {record.cname}", ""])

        lines.extend(["**Vulnerabilities:**", ""])
        lines.extend(f"- {v}" for v in record.vulnerabilities)
        lines.append("")

        if record.exposed_files:
            lines.extend(["**Exposed Files:**", ""])
            lines.extend(f"- {f}" for f in record.exposed_files)
            lines.append("")

        if record.open_redirect:
            lines.extend([f"**Open Redirect URL:** {record.redirect_url}", ""])

        if record.tags:
            lines.extend([f"**Tags:** {', '.join(record.tags)}", ""])

        lines.extend(["---", ""])

    return "\n".join(lines)


class ReportExporter:
    """
    Writes rendered reports to disk.

    Usage:
        exporter = ReportExporter(Path("output"))
        path = exporter.export(report, "html", target="example.com")
    """

    def __init__(self, output_dir: Path):
        """
        Initialize the report exporter.

        Args:
            output_dir: Directory to save reports (will be created if needed)
        """
        self.output_dir = output_dir
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def export(
        self,
        results: Union[ScanReport, list[ProbeRecord]],
        fmt: str,
        target: str = "",
        filename: Optional[str] = None,
    ) -> Path:
        """
        Render and write a report.

        Args:
            results: A scored report or a list of probe records
            fmt: Output format
            target: Target domain for report headers
            filename: File name without directory (default: derived from format)

        Returns:
            Path of the written file
        """
        if isinstance(results, ScanReport):
            content = format_report(results, fmt, target=target)
            stem = "scores"
        else:
            content = format_probe_records(results, fmt)
            stem = "probes"

        output_path = self.output_dir / (filename or f"{stem}{FILE_EXTENSIONS[fmt]}")
        output_path.write_text(content, encoding="utf-8")

        logger.info(f"Exported {fmt} report to {output_path}")
        return output_path


def write_output(content: str, output: Optional[Path]) -> Optional[Path]:
    """
    Write rendered content to ``output`` if given.

    Raises:
        ConfigurationError: If the file cannot be written
    """
    if output is None:
        return None
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(content, encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot write output file {output}: {e}") from e
    logger.debug(f"Wrote {len(content)} bytes to {output}")
    return output
