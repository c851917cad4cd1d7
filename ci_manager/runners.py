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

"""Suite runners: command templates from suites.yaml executed with ``sh``."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import sh

from ci_manager import console
from ci_manager.constants import suite_value
from ci_manager.errors import SuiteFailure
from ci_manager.results import collect
from ci_manager.utils import Deadline, render_command, render_env


@dataclass(frozen=True)
class SuiteRun:
    """Raw outcome of one suite invocation."""

    result_files: tuple[Path, ...]
    exit_code: int


class TestRunner(Protocol):
    """Runs a suite against a target and reports its raw results."""

    def run(self, suite: str, values: dict[str, str], deadline: Deadline) -> SuiteRun: ...


class CommandTestRunner:
    """Runs the command template configured for a suite.

    Args:
        results_root: Directory under which each suite gets its own results dir.
        cwd: Working directory for suite commands.
    """

    __test__ = False

    def __init__(self, results_root: Path, cwd: Path | None = None) -> None:
        self.results_root = results_root
        self.cwd = cwd

    def results_dir(self, suite: str) -> Path:
        return self.results_root / suite

    def run(self, suite: str, values: dict[str, str], deadline: Deadline) -> SuiteRun:
        """Run ``suite`` and collect its result files.

        Args:
            suite: Suite name as configured in suites.yaml.
            values: Placeholder values for the command template.
            deadline: Run deadline; the command is killed when it passes.

        Returns:
            Result files and exit code of the suite command.

        Raises:
            SuiteFailure: If the suite is not configured or its command is missing.
            sh.TimeoutException: If the run deadline passes.
        """
        template = suite_value("suites", suite, "command")
        if not template:
            raise SuiteFailure(f"No command configured for suite '{suite}'")

        results_dir = self.results_dir(suite)
        shutil.rmtree(results_dir, ignore_errors=True)
        results_dir.mkdir(parents=True, exist_ok=True)

        values = {**values, "results_dir": str(results_dir)}
        argv = render_command(template, values)
        env = render_env(suite_value("suites", suite, "env"), values)

        console.print(f"[yellow]ℹ️  {suite}: {' '.join(argv)}[/yellow]")
        try:
            sh.Command(argv[0])(
                *argv[1:],
                _cwd=str(self.cwd) if self.cwd else None,
                _env={**os.environ, **env},
                _timeout=deadline.timeout_for(argv[0]),
                _out=lambda line: console.print(line, end="", markup=False, highlight=False),
                _err_to_out=True,
            )
            exit_code = 0
        except sh.ErrorReturnCode as e:
            exit_code = e.exit_code
        except sh.CommandNotFound as err:
            raise SuiteFailure(f"{suite}: command '{argv[0]}' not found") from err

        pattern = suite_value("suites", suite, "results", default="*.xml")
        return SuiteRun(result_files=collect(results_dir, pattern), exit_code=exit_code)
