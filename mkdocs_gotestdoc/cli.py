#!/usr/bin/env python3
"""
Generate a Markdown test report for a Go module.

Usage:
    gotestdoc --junit report.xml
    gotestdoc --source ./pkg --junit report.xml -o TESTS.md
    python -m mkdocs_gotestdoc.cli --junit report.xml --fail-snippet 0
"""

import argparse
import logging
import sys

from .junit import parse_junit_results
from .parser import parse_test_suites
from .renderer import format_tree, generate_markdown_report

log = logging.getLogger("mkdocs.plugins.gotestdoc")


def main(argv=None):
    p = argparse.ArgumentParser(description="Document Go tests and their JUnit results")
    p.add_argument("--source", default=".", help="Source directory to scan for tests")
    p.add_argument("-o", "--output", default="TESTS.md", help="Output markdown file path")
    p.add_argument("--junit", default="", help="Path to JUnit XML (required)")
    p.add_argument(
        "--fail-snippet",
        type=int,
        default=300,
        help="Max chars of failure message to include (0 hides it)",
    )
    p.add_argument("--tags", default="", help="Comma-separated extra build tags")
    p.add_argument("-v", "--verbose", action="store_true", help="Log discovery details")
    args = p.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    if not args.junit:
        print(
            "error: --junit path is required (provide JUnit XML from a previous step)",
            file=sys.stderr,
        )
        sys.exit(1)

    # 1) static structure from the sources
    try:
        suites = parse_test_suites(args.source, args.tags.split(","))
    except (RuntimeError, OSError) as exc:
        print(f"error listing test functions: {exc}", file=sys.stderr)
        sys.exit(1)

    listing = format_tree(suites)
    if listing:
        print(listing)

    # 2) results; a broken report still yields a document, all NOT RUN
    results = {}
    try:
        results = parse_junit_results(args.junit)
    except (RuntimeError, OSError) as exc:
        log.warning("gotestdoc: reading junit: %s", exc)

    # 3) report
    try:
        generate_markdown_report(suites, results, args.output, fail_snippet=args.fail_snippet)
    except OSError as exc:
        print(f"error generating markdown report: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
