"""
Markdown renderer for discovered Go tests.

Takes TestSuite trees from the parser plus the JUnit results and turns them
into one table per test file, with status icons, durations, a one-line
description taken from each test's comment and a failure snippet.
"""

from __future__ import annotations

import textwrap

from .junit import Status, pkg_key

_STATUS_ICONS = {
    Status.PASS: "✅",
    Status.FAIL: "❌",
    Status.SKIP: "⏭️",
}

_PATH_SEP = " → "

TABLE_HEADER = "| Test Path | Status | Duration | Description | Failure |"
TABLE_RULE = "|-----------|--------|----------|-------------|----------|"


def status_icon(status):
    return _STATUS_ICONS.get(status, "⚪")


def truncate(text, limit):
    if limit <= 0 or not text:
        return ""
    if len(text) <= limit:
        return text
    return text[:limit] + "…"


def _cell(text):
    return text.replace("|", "\\|").replace("\n", " ")


def strip_comment_markers(comment):
    """Remove ``//`` and ``/* */`` markers from a Go comment block."""
    lines = []
    in_block = False
    for line in comment.split("\n"):
        s = line.strip()
        if not in_block and s.startswith("//"):
            lines.append(s[2:])
            continue
        if not in_block and s.startswith("/*"):
            in_block = True
            s = s[2:]
        if in_block:
            if s.endswith("*/"):
                in_block = False
                s = s[:-2]
            if s.startswith("*"):
                s = s[1:]
        lines.append(s)
    return textwrap.dedent("\n".join(lines)).strip()


def extract_summary(comment):
    """First usable line of a comment: skips blanks and ``@tag`` lines.

    A ``@desc:`` line supplies the summary explicitly.
    """
    if not comment:
        return ""
    for line in strip_comment_markers(comment).split("\n"):
        line = line.strip()
        if line.startswith("@desc:"):
            return line[len("@desc:") :].strip()
        if line and not line.startswith("@"):
            return line
    return ""


def _render_unit(lines, unit, package, results, prefix, fail_snippet):
    path = unit.name if not prefix else f"{prefix}{_PATH_SEP}{unit.name}"

    status = Status.NOT_RUN
    duration = "-"
    failure = ""
    rec = results.get(pkg_key(package, unit.machine_name))
    if rec is not None:
        status = rec.status
        if rec.duration:
            duration = rec.duration
        if rec.status == Status.FAIL and rec.failure:
            failure = _cell(truncate(rec.failure, fail_snippet))

    description = _cell(extract_summary(unit.comment))
    lines.append(
        f"| {_cell(path)} | {status_icon(status)} {status.value} | {duration} "
        f"| {description} | {failure} |"
    )
    for sub in unit.subtests:
        _render_unit(lines, sub, package, results, path, fail_snippet)


def render_suite(suite, results, *, fail_snippet=100, heading_level=2):
    lines = [f"{'#' * heading_level} Test Suite: {suite.name}", ""]
    if suite.comment:
        lines += ["**Suite Description:**", "", suite.comment, ""]
    lines += [TABLE_HEADER, TABLE_RULE]
    for unit in suite.units:
        _render_unit(lines, unit, suite.package, results, "", fail_snippet)
    lines.append("")
    return "\n".join(lines)


def render_report(suites, results=None, *, fail_snippet=100, title="Test Documentation Report"):
    results = results or {}
    parts = [f"# {title}", ""]
    for suite in suites:
        parts.append(render_suite(suite, results, fail_snippet=fail_snippet))
    return "\n".join(parts) + "\n"


def generate_markdown_report(suites, results, out_path, **kwargs):
    md = render_report(suites, results, **kwargs)
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(md)


def format_tree(suites):
    """Plain-text listing of the discovered suites and units."""
    out = []

    def _unit(unit, indent):
        out.append(f"{indent}Test: {unit.name}")
        out.append(f"{indent}Machine Name: {unit.machine_name}")
        if unit.comment:
            out.append(f"{indent}Comments:")
            out.append(unit.comment)
        for sub in unit.subtests:
            _unit(sub, indent + "  ")

    for suite in suites:
        out.append(f"Package: {suite.package}")
        out.append(f"Suite: {suite.name}")
        if suite.comment:
            out.append("Comments:")
            out.append(suite.comment)
        for unit in suite.units:
            _unit(unit, "")
    return "\n".join(out)
