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

"""Result reporting: transition notifications and test-management submission."""

from __future__ import annotations

import json
from collections.abc import Sequence
from fnmatch import fnmatchcase

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from ci_manager import console, logger
from ci_manager.config import PipelineConfig, SlackConfig, XrayConfig
from ci_manager.constants import (
    HTTP_MAX_RETRIES,
    HTTP_RETRY_WAIT_SECONDS,
    HTTP_TIMEOUT_SECONDS,
    SEVERITY_DANGER,
    SEVERITY_GOOD,
)
from ci_manager.errors import ReportSubmissionError
from ci_manager.models import Outcome, RunIdentity, StagePlan, TestReport
from ci_manager.notify import SlackNotifier

BROKEN = "broken"
FIXED = "fixed"


# ============================================================================
# History
# ============================================================================

def previous_real_outcome(history: Sequence[Outcome]) -> Outcome | None:
    """Walk back through ``history`` (oldest first) past aborted runs.

    Returns:
        The most recent outcome that is not ABORTED, or None.
    """
    for outcome in reversed(history):
        if outcome is not Outcome.ABORTED:
            return outcome
    return None


def transition(history: Sequence[Outcome], current: Outcome) -> str | None:
    """Classify ``current`` against the last meaningful prior outcome.

    Returns:
        ``"broken"`` for SUCCESS followed by a non-success, ``"fixed"`` for a
        non-success followed by SUCCESS, otherwise None.
    """
    if current is Outcome.ABORTED:
        return None
    previous = previous_real_outcome(history)
    if previous is None or previous is current:
        return None
    if current is Outcome.SUCCESS:
        return FIXED
    if previous is Outcome.SUCCESS:
        return BROKEN
    return None


# ============================================================================
# Test management
# ============================================================================

class XrayClient:
    """Imports JUnit results into the test-management system."""

    def __init__(self, cfg: XrayConfig, session: requests.Session | None = None) -> None:
        self.cfg = cfg
        self.session = session or requests.Session()
        if cfg.token:
            self.session.headers["Authorization"] = f"Bearer {cfg.token}"

    @retry(
        stop=stop_after_attempt(HTTP_MAX_RETRIES),
        wait=wait_fixed(HTTP_RETRY_WAIT_SECONDS),
        retry=retry_if_exception_type(requests.ConnectionError),
        reraise=True,
    )
    def _post(self, files: dict) -> requests.Response:
        return self.session.post(
            f"{self.cfg.url.rstrip('/')}/rest/raven/2.0/import/execution/junit/multipart",
            files=files,
            timeout=HTTP_TIMEOUT_SECONDS,
        )

    def submit(self, report: TestReport, summary: str, description: str) -> list[str]:
        """Submit every result file of ``report`` against its test plan.

        Returns:
            Keys of the created test executions.

        Raises:
            ReportSubmissionError: If any import is rejected or unreachable.
        """
        info = {
            "fields": {
                "project": {"key": self.cfg.project_key},
                "summary": summary,
                "description": description,
            },
            "xrayFields": {
                "testPlanKey": report.test_plan_id,
                "version": report.tag,
            },
        }
        keys = []
        for path in report.result_files:
            try:
                with open(path, "rb") as fh:
                    resp = self._post({
                        "file": (path.name, fh, "application/xml"),
                        "info": ("info.json", json.dumps(info), "application/json"),
                    })
                resp.raise_for_status()
            except (OSError, requests.RequestException) as err:
                raise ReportSubmissionError(f"Failed to import {path.name}: {err}") from err
            keys.append(resp.json().get("key", ""))
        return keys


# ============================================================================
# Reporter
# ============================================================================

class Reporter:
    """Emits notifications and external reports for a finished run.

    Args:
        notifier: Chat notifier.
        slack_cfg: Channels to post to.
        pipeline_cfg: Branch patterns that receive transition notifications.
        xray: Test-management client, or None when submission is disabled.
        run: Identity of the current run.
    """

    def __init__(
        self,
        notifier: SlackNotifier,
        slack_cfg: SlackConfig,
        pipeline_cfg: PipelineConfig,
        xray: XrayClient | None,
        run: RunIdentity,
    ) -> None:
        self.notifier = notifier
        self.slack_cfg = slack_cfg
        self.pipeline_cfg = pipeline_cfg
        self.xray = xray
        self.run = run

    def _link(self) -> str:
        return f" (<{self.run.build_url}|Open>)" if self.run.build_url else ""

    def report(
        self,
        history: Sequence[Outcome],
        outcome: Outcome,
        plan: StagePlan,
        test_report: TestReport | None = None,
    ) -> None:
        """Report a finished run.

        Args:
            history: Prior overall outcomes of this branch, oldest first.
            outcome: Overall outcome of this run.
            plan: Stage plan of this run.
            test_report: Aggregated suite results, if any suite produced files.
        """
        self.notify_transition(history, outcome, plan)
        if plan.continuous and outcome in (Outcome.FAILURE, Outcome.UNSTABLE):
            self.notifier.notify(
                self.slack_cfg.continuous_channel,
                SEVERITY_DANGER,
                f"Continuous e2e run {self.run} on {plan.branch} ({plan.image_tag}) "
                f"finished with {outcome.value}{self._link()}",
            )
        if test_report is not None:
            self.submit(plan, test_report)

    def notify_transition(self, history: Sequence[Outcome], outcome: Outcome, plan: StagePlan) -> str | None:
        if not any(fnmatchcase(plan.branch, p) for p in self.pipeline_cfg.notify_branches):
            return None
        change = transition(history, outcome)
        if change == BROKEN:
            self.notifier.notify(self.slack_cfg.channel, SEVERITY_DANGER,
                                 f"Branch {plan.branch} is broken{self._link()}")
        elif change == FIXED:
            self.notifier.notify(self.slack_cfg.channel, SEVERITY_GOOD,
                                 f"Branch {plan.branch} has been fixed{self._link()}")
        return change

    def submit(self, plan: StagePlan, test_report: TestReport) -> bool:
        """Send results to the test-management system. Never raises."""
        if self.xray is None or not plan.report_test_results or not test_report.result_files:
            return False
        summary = f"{plan.branch} #{test_report.build_number} ({plan.image_tag})"
        description = (
            f"Run {self.run} tested {plan.image_tag} on {plan.branch}: "
            f"{test_report.passed} passed, {test_report.failed} failed of {test_report.total}."
        )
        if self.run.build_url:
            description += f"\n{self.run.build_url}"
        try:
            keys = self.xray.submit(test_report, summary, description)
        except ReportSubmissionError as e:
            logger.warning("Test results not submitted: %s", e)
            console.print(f"[yellow]⚠️  {e}[/yellow]")
            return False
        console.print(f"[green]✅ Submitted results to {plan.test_plan_id}: {', '.join(k for k in keys if k)}[/green]")
        return True
