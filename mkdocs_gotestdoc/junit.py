"""
JUnit XML result reader.

Accepts both a ``<testsuites>`` document and a bare ``<testsuite>`` root, as
produced by ``go-junit-report``, ``gotestsum`` and friends, and indexes every
test case by ``package::TestName[/sub]``.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from enum import Enum


class Status(Enum):
    PASS = "PASS"
    FAIL = "FAIL"
    SKIP = "SKIP"
    NOT_RUN = "NOT RUN"


@dataclass
class JUnitRecord:
    status: Status
    duration: str = ""
    failure: str = ""


def pkg_key(pkg, test):
    return f"{pkg.strip()}::{test.strip()}"


def parse_junit_results(path):
    """Read a JUnit XML file into ``{pkg_key: JUnitRecord}``.

    Raises OSError when the file cannot be read and RuntimeError when it is
    not well-formed XML.
    """
    with open(path, "rb") as f:
        data = f.read()
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise RuntimeError(f"failed to parse JUnit XML {path}: {exc}") from exc

    if root.tag == "testsuites":
        suites = root.findall("testsuite")
    elif root.tag == "testsuite":
        suites = [root]
    else:
        return {}
    return collect_from_suites(suites)


def collect_from_suites(suites):
    out = {}
    for suite in suites:
        for case in suite.findall("testcase"):
            # some reporters only put the package on the suite
            pkg = case.get("classname") or suite.get("name", "")
            out[pkg_key(pkg, case.get("name", ""))] = _record(case)
    return out


def _record(case):
    status = Status.PASS
    message = ""

    skipped = case.find("skipped")
    if skipped is not None:
        status = Status.SKIP
        message = skipped.get("message", "")

    failure = case.find("failure")
    if failure is None:
        failure = case.find("error")
    if failure is not None:
        status = Status.FAIL
        message = failure.get("message") or (failure.text or "")

    duration = ""
    elapsed = (case.get("time") or "").strip()
    if elapsed:
        duration = f"{elapsed}s"
    return JUnitRecord(status=status, duration=duration, failure=message.strip())
