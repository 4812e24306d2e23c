"""
Command-line interface for the LibProbe library scanner.

Scans a site for third-party JavaScript/CSS libraries and reports the
known vulnerabilities of each detected version.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any

import httpx
import structlog

from libprobe import __version__


def configure_logging(verbose: bool = False, debug: bool = False) -> None:
    """Configure structlog for CLI output.

    Logs go to stderr so a report written to stdout stays clean.
    ``LIBPROBE_LOG_LEVEL`` sets the level when neither flag is given.
    """
    if debug:
        log_level = "DEBUG"
    elif verbose:
        log_level = "INFO"
    else:
        log_level = os.environ.get("LIBPROBE_LOG_LEVEL", "WARNING").upper()
    level = getattr(logging, log_level, logging.WARNING)

    logging.basicConfig(format="%(message)s", level=level, stream=sys.stderr)

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog="libprobe",
        description="LibProbe - detect third-party JS/CSS library versions and their known vulnerabilities",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  libprobe example.com
  libprobe https://example.com --max-pages 200 --concurrency 10
  libprobe https://example.com --url /pricing --url /docs/ --no-osv
  libprobe https://example.com -o report.html --report-format html

Exit codes:
  0    scan completed, no vulnerable libraries
  1    invalid request or configuration
  2    at least one library has known vulnerabilities
  130  interrupted
""",
    )

    parser.add_argument(
        "target",
        help="Base URL of the site to scan (https:// is assumed when omitted)",
    )

    parser.add_argument(
        "--url",
        action="append",
        default=[],
        dest="urls",
        help="Extra page to scan, absolute or relative to the target (repeatable)",
    )

    parser.add_argument(
        "--urls-file",
        default=None,
        help="File with one page URL per line (blank lines and # comments ignored)",
    )

    parser.add_argument("--max-pages", type=int, default=None, help="Maximum pages to scan (1-500, default: 60)")
    parser.add_argument(
        "--max-sitemaps", type=int, default=None, help="Maximum sitemap documents to fetch (1-100, default: 20)"
    )
    parser.add_argument("--concurrency", type=int, default=None, help="Pages fetched in parallel (1-20, default: 6)")
    parser.add_argument(
        "--timeout-ms", type=int, default=None, help="Per-request timeout in ms (2000-60000, default: 12000)"
    )

    parser.add_argument(
        "--no-osv",
        action="store_true",
        help="Skip the OSV vulnerability lookup",
    )

    parser.add_argument(
        "-o", "--output",
        default=None,
        help="Output file path for report (default: stdout)",
    )

    parser.add_argument(
        "--report-format",
        choices=["json", "html", "text"],
        default="text",
        dest="report_format",
        help="Report output format (default: text)",
    )

    parser.add_argument(
        "--show-log",
        action="store_true",
        help="Append the scan transcript to text output",
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("--debug", action="store_true", help="Enable debug output")
    parser.add_argument("--version", action="version", version=f"LibProbe {__version__}")

    return parser


def read_urls_file(path: str | Path) -> list[str]:
    """Read page URLs from a file, one per line."""
    urls: list[str] = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            urls.append(line)
    return urls


def build_payload(args: argparse.Namespace) -> dict[str, Any]:
    """Translate CLI arguments into wire-format scan options."""
    urls = list(args.urls)
    if args.urls_file:
        urls.extend(read_urls_file(args.urls_file))

    payload: dict[str, Any] = {"baseUrl": args.target, "checkVulnerabilities": not args.no_osv}
    if urls:
        payload["urls"] = urls
    optional = {
        "maxPages": args.max_pages,
        "maxSitemaps": args.max_sitemaps,
        "concurrency": args.concurrency,
        "requestTimeoutMs": args.timeout_ms,
    }
    payload.update({key: value for key, value in optional.items() if value is not None})
    return payload


async def run_scan(args: argparse.Namespace, transport: httpx.AsyncBaseTransport | None = None) -> int:
    """
    Execute the library scan.

    Args:
        args: Parsed command-line arguments
        transport: Optional httpx transport, used by tests

    Returns:
        Exit code
    """
    from libprobe.orchestrator import scan_site
    from libprobe.reports import ReportGenerator

    logger = structlog.get_logger(__name__)

    try:
        payload = build_payload(args)
    except OSError as e:
        logger.error("urls_file_error", path=args.urls_file, error=str(e))
        return 1

    report = await scan_site(payload, transport=transport)
    if report.error and not report.pages.scanned:
        logger.error("scan_failed", error=report.error)
        print(f"Error: {report.error}", file=sys.stderr)
        return 1

    reporter = ReportGenerator(report)
    if args.report_format == "json":
        rendered = reporter.generate_json()
    elif args.report_format == "html":
        rendered = reporter.generate_html()
    else:
        rendered = reporter.generate_text(include_log=args.show_log)

    if args.output:
        output_path = Path(args.output)
        output_path.write_text(rendered, encoding="utf-8")
        logger.info("report_saved", path=str(output_path.absolute()))
    else:
        print(rendered)

    logger.info(
        "scan_summary",
        pages_scanned=report.pages.scanned,
        pages_failed=report.pages.failed,
        libraries=len(report.libraries),
        vulnerable=len(report.vulnerable_libraries),
        lookup_errors=len(report.lookup_errors),
        duration=f"{report.duration_seconds:.2f}s",
    )

    if report.error:
        return 1
    if report.vulnerable_libraries:
        return 2
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=args.verbose, debug=args.debug)

    try:
        exit_code = asyncio.run(run_scan(args))
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nScan interrupted by user", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
