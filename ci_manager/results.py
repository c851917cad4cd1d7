# /*
# Copyright 2026 The Mayastor CI Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""JUnit result parsing and aggregation into a :class:`TestReport`."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Iterable
from pathlib import Path

from ci_manager import logger
from ci_manager.models import Outcome, StagePlan, SuiteCounts, TestReport


def _int(element: ET.Element, name: str) -> int:
    try:
        return int(float(element.get(name, "0") or 0))
    except ValueError:
        return 0


def _counts_from_cases(name: str, source: Path, suite: ET.Element) -> SuiteCounts:
    cases = suite.findall(".//testcase")
    return SuiteCounts(
        name=name,
        source=source,
        tests=len(cases),
        failures=sum(1 for c in cases if c.find("failure") is not None),
        errors=sum(1 for c in cases if c.find("error") is not None),
        skipped=sum(1 for c in cases if c.find("skipped") is not None),
    )


def parse_junit(path: Path) -> list[SuiteCounts]:
    """Read per-suite counts from a JUnit XML document.

    Accepts either a ``<testsuites>`` or a bare ``<testsuite>`` root. Counts
    come from the suite attributes when present and from the test cases
    otherwise.

    Args:
        path: JUnit XML file.

    Returns:
        One entry per ``<testsuite>``; empty if the file cannot be parsed.
    """
    try:
        root = ET.parse(path).getroot()
    except (ET.ParseError, OSError) as e:
        logger.warning("Skipping unreadable result file %s: %s", path, e)
        return []

    suites = [root] if root.tag == "testsuite" else root.findall("testsuite")
    counts = []
    for suite in suites:
        name = suite.get("name") or path.stem
        if suite.get("tests") is None:
            counts.append(_counts_from_cases(name, path, suite))
            continue
        counts.append(SuiteCounts(
            name=name,
            source=path,
            tests=_int(suite, "tests"),
            failures=_int(suite, "failures"),
            errors=_int(suite, "errors"),
            skipped=_int(suite, "skipped") or _int(suite, "disabled"),
        ))
    return counts


def collect(results_dir: Path, pattern: str) -> tuple[Path, ...]:
    if not results_dir.is_dir():
        return ()
    return tuple(sorted(results_dir.glob(pattern)))


def suite_outcome(exit_code: int, result_files: Iterable[Path]) -> Outcome:
    """FAILURE on a non-zero exit, UNSTABLE when results record failed tests."""
    if exit_code != 0:
        return Outcome.FAILURE
    for path in result_files:
        if any(s.failed for s in parse_junit(path)):
            return Outcome.UNSTABLE
    return Outcome.SUCCESS


def aggregate(result_files: Iterable[Path], plan: StagePlan, build_number: int) -> TestReport:
    """Combine result files of every stage into one report."""
    suites: list[SuiteCounts] = []
    for path in result_files:
        suites.extend(parse_junit(path))
    return TestReport(
        build_number=build_number,
        branch=plan.branch,
        tag=plan.image_tag,
        test_plan_id=plan.test_plan_id,
        suites=tuple(suites),
    )
