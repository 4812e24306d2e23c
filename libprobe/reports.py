"""
Report assembly and rendering for LibProbe scans.

Sorts the aggregated libraries, keeps the human-readable scan
transcript, and renders finished reports as JSON, HTML or plain text.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import structlog
from jinja2 import Environment

from libprobe.models import LibraryRecord, ScanReport
from libprobe.utils import format_duration, truncate_string

logger = structlog.get_logger(__name__)


def library_sort_key(library: LibraryRecord) -> tuple[int, int, str]:
    return (-library.vulnerability_count, -library.occurrences, library.label)


def sort_libraries(libraries: Iterable[LibraryRecord]) -> list[LibraryRecord]:
    """
    Order libraries for display.

    Most vulnerabilities first, then most occurrences, then ``name@version``
    compared as plain strings.
    """
    return sorted(libraries, key=library_sort_key)


class ScanLog:
    """
    Append-only scan transcript.

    Each line is also sent through structlog so the transcript and the
    structured log never disagree.
    """

    INFO_PREFIX = "[*] "
    WARNING_PREFIX = "[!] "

    def __init__(self) -> None:
        self._lines: list[str] = []

    def __len__(self) -> int:
        return len(self._lines)

    def info(self, message: str) -> None:
        self._lines.append(f"{self.INFO_PREFIX}{message}")
        logger.info("scan_log", message=message)

    def warning(self, message: str) -> None:
        self._lines.append(f"{self.WARNING_PREFIX}{message}")
        logger.warning("scan_log", message=message)

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    @property
    def text(self) -> str:
        return "\n".join(self._lines)


class ReportGenerator:
    """
    Render a finished scan report.

    Supports JSON, HTML and plain-text output.
    """

    def __init__(self, report: ScanReport) -> None:
        """
        Initialize report generator.

        Args:
            report: Scan report to render
        """
        self.report = report

    def generate_json(self, output_path: str | Path | None = None) -> str:
        """
        Generate JSON report using the camelCase wire names.

        Args:
            output_path: Optional path to save report

        Returns:
            JSON string of the report
        """
        json_str = json.dumps(self.report.to_wire(), indent=2)
        logger.info("json_report_generated", libraries=len(self.report.libraries))
        self._save(json_str, output_path, "json")
        return json_str

    def generate_html(self, output_path: str | Path | None = None) -> str:
        """
        Generate HTML report.

        Args:
            output_path: Optional path to save report

        Returns:
            HTML string of the report
        """
        html = self._render_html(self._build_report_data())
        logger.info("html_report_generated", libraries=len(self.report.libraries))
        self._save(html, output_path, "html")
        return html

    def generate_text(self, output_path: str | Path | None = None, *, include_log: bool = False) -> str:
        """
        Generate a plain-text summary for terminals.

        Args:
            output_path: Optional path to save report
            include_log: Append the scan transcript

        Returns:
            Text report
        """
        r = self.report
        lines = [
            f"LibProbe scan of {r.base_url or '(no target)'}",
            f"Scan ID: {r.scan_id}",
            f"Duration: {format_duration(r.duration_seconds)}",
        ]
        if r.error:
            lines.append(f"Error: {r.error}")
        lines.append(
            f"Pages: {r.pages.discovered} discovered, {r.pages.scanned} scanned, "
            f"{r.pages.ok} ok, {r.pages.failed} failed"
        )
        lines.append(f"Sitemaps fetched: {r.sitemaps_fetched}")
        lines.append(
            f"Libraries: {len(r.libraries)} detected, {len(r.vulnerable_libraries)} vulnerable, "
            f"{r.total_vulnerabilities} known vulnerabilities"
        )

        if r.libraries:
            lines.append("")
            for lib in r.libraries:
                if lib.vulnerability_error:
                    status = f"lookup failed: {lib.vulnerability_error}"
                elif lib.vulnerability_count:
                    status = f"{lib.vulnerability_count} vulns: {', '.join(lib.vulnerability_ids[:5])}"
                    if lib.vulnerability_count > 5:
                        status += ", ..."
                else:
                    status = "no known vulns"
                lines.append(f"  {lib.label:<40} x{lib.occurrences:<4} {status}")

        if r.page_errors:
            lines.append("")
            lines.append("Page errors:")
            for err in r.page_errors:
                status = err.status if err.status is not None else "-"
                lines.append(f"  [{status}] {truncate_string(err.url, 80)}: {err.error}")

        if include_log and r.log:
            lines.append("")
            lines.append(r.log)

        text = "\n".join(lines) + "\n"
        self._save(text, output_path, "text")
        return text

    def _save(self, content: str, output_path: str | Path | None, fmt: str) -> None:
        if output_path:
            Path(output_path).write_text(content, encoding="utf-8")
            logger.info("report_saved", path=str(output_path), format=fmt)

    def _build_report_data(self) -> dict[str, Any]:
        """Build the template context."""
        r = self.report
        return {
            "base_url": r.base_url,
            "scan_id": r.scan_id,
            "started_at": r.started_at.isoformat(),
            "duration": format_duration(r.duration_seconds),
            "error": r.error,
            "pages": r.pages,
            "sitemaps_fetched": r.sitemaps_fetched,
            "vulnerable_count": len(r.vulnerable_libraries),
            "total_vulnerabilities": r.total_vulnerabilities,
            "libraries": r.libraries,
            "page_errors": r.page_errors,
            "log": r.log,
        }

    def _render_html(self, data: dict[str, Any]) -> str:
        """Render HTML report from data.

        Autoescaping is on: page URLs, asset URLs and OSV summaries all
        come from third parties.
        """
        env = Environment(autoescape=True)
        template = env.from_string(HTML_TEMPLATE)
        return template.render(data=data)


HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>LibProbe Library Report - {{ data.base_url }}</title>
    <style>
        :root {
            --primary: #2563eb;
            --danger: #dc2626;
            --warn: #ca8a04;
            --ok: #16a34a;
            --bg: #f8fafc;
            --card-bg: #ffffff;
            --text: #1e293b;
            --text-muted: #64748b;
            --border: #e2e8f0;
        }
        * { box-sizing: border-box; margin: 0; padding: 0; }
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            background: var(--bg);
            color: var(--text);
            line-height: 1.6;
        }
        .container { max-width: 1200px; margin: 0 auto; padding: 2rem; }
        header {
            background: var(--primary);
            color: white;
            padding: 2rem;
            margin-bottom: 2rem;
            border-radius: 12px;
        }
        header h1 { font-size: 1.75rem; font-weight: 600; }
        header .meta { opacity: 0.9; font-size: 0.875rem; word-break: break-all; }
        .stats { display: grid; grid-template-columns: repeat(auto-fit, minmax(160px, 1fr)); gap: 1rem; margin-bottom: 2rem; }
        .stat { background: var(--card-bg); border-radius: 12px; padding: 1rem 1.25rem; box-shadow: 0 1px 3px rgba(0,0,0,0.1); }
        .stat .value { font-size: 1.75rem; font-weight: 700; }
        .stat .label { font-size: 0.75rem; color: var(--text-muted); text-transform: uppercase; letter-spacing: 0.05em; }
        section { background: var(--card-bg); border-radius: 12px; padding: 1.5rem; margin-bottom: 2rem; box-shadow: 0 1px 3px rgba(0,0,0,0.1); }
        section h2 { font-size: 1.125rem; margin-bottom: 1rem; }
        table { width: 100%; border-collapse: collapse; font-size: 0.875rem; }
        th, td { text-align: left; padding: 0.5rem; border-bottom: 1px solid var(--border); vertical-align: top; }
        th { color: var(--text-muted); font-weight: 600; }
        code { font-family: ui-monospace, SFMono-Regular, Menlo, monospace; word-break: break-all; }
        .vuln { color: var(--danger); font-weight: 600; }
        .lookup-error { color: var(--warn); }
        .clean { color: var(--ok); }
        .error-banner { background: #fee2e2; color: var(--danger); padding: 1rem; border-radius: 8px; margin-bottom: 2rem; }
        details summary { cursor: pointer; color: var(--text-muted); }
        pre { white-space: pre-wrap; font-size: 0.8rem; background: var(--bg); padding: 1rem; border-radius: 8px; }
    </style>
</head>
<body>
<div class="container">
    <header>
        <h1>Library Version Scan</h1>
        <div class="meta">{{ data.base_url }} &middot; {{ data.started_at }} &middot; {{ data.duration }} &middot; ID {{ data.scan_id }}</div>
    </header>

    {% if data.error %}
    <div class="error-banner">{{ data.error }}</div>
    {% endif %}

    <div class="stats">
        <div class="stat"><div class="value">{{ data.pages.scanned }}/{{ data.pages.discovered }}</div><div class="label">Pages scanned</div></div>
        <div class="stat"><div class="value">{{ data.pages.failed }}</div><div class="label">Pages failed</div></div>
        <div class="stat"><div class="value">{{ data.sitemaps_fetched }}</div><div class="label">Sitemaps</div></div>
        <div class="stat"><div class="value">{{ data.libraries|length }}</div><div class="label">Libraries</div></div>
        <div class="stat"><div class="value">{{ data.vulnerable_count }}</div><div class="label">Vulnerable</div></div>
        <div class="stat"><div class="value">{{ data.total_vulnerabilities }}</div><div class="label">Known vulns</div></div>
    </div>

    <section>
        <h2>Libraries</h2>
        {% if data.libraries %}
        <table>
            <thead><tr><th>Library</th><th>Occurrences</th><th>Vulnerabilities</th><th>Sources</th></tr></thead>
            <tbody>
            {% for lib in data.libraries %}
            <tr>
                <td><code>{{ lib.label }}</code>{% if lib.ecosystem %} <small>({{ lib.ecosystem }})</small>{% endif %}</td>
                <td>{{ lib.occurrences }}</td>
                <td>
                    {% if lib.vulnerability_error %}
                    <span class="lookup-error">{{ lib.vulnerability_error }}</span>
                    {% elif lib.vulnerability_count %}
                    <span class="vuln">{{ lib.vulnerability_count }}</span>
                    <ul>
                    {% for v in lib.vulnerabilities or [] %}
                        <li><code>{{ v.id }}</code>{% if v.summary %} {{ v.summary }}{% endif %}</li>
                    {% endfor %}
                    </ul>
                    {% else %}
                    <span class="clean">0</span>
                    {% endif %}
                </td>
                <td>{% for src in lib.sources[:3] %}<code>{{ src }}</code><br>{% endfor %}{% if lib.sources|length > 3 %}<small>+{{ lib.sources|length - 3 }} more</small>{% endif %}</td>
            </tr>
            {% endfor %}
            </tbody>
        </table>
        {% else %}
        <p>No libraries detected.</p>
        {% endif %}
    </section>

    {% if data.page_errors %}
    <section>
        <h2>Page errors</h2>
        <table>
            <thead><tr><th>Status</th><th>URL</th><th>Error</th></tr></thead>
            <tbody>
            {% for err in data.page_errors %}
            <tr><td>{{ err.status if err.status is not none else '-' }}</td><td><code>{{ err.url }}</code></td><td>{{ err.error }}</td></tr>
            {% endfor %}
            </tbody>
        </table>
    </section>
    {% endif %}

    {% if data.log %}
    <section>
        <details>
            <summary>Scan log</summary>
            <pre>{{ data.log }}</pre>
        </details>
    </section>
    {% endif %}
</div>
</body>
</html>"""
