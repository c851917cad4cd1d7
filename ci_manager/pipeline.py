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

"""Top-level run: plan, execute, publish, report, and re-arm."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

import requests
from rich.panel import Panel
from rich.table import Table

from ci_manager import console, logger
from ci_manager.cluster import ClusterLifecycleManager, JenkinsClusterProvider
from ci_manager.config import (
    JenkinsConfig,
    LogShipperConfig,
    PipelineConfig,
    RunContext,
    SlackConfig,
    XrayConfig,
    display_plan,
)
from ci_manager.constants import STAGE_PUBLISH
from ci_manager.coordinator import TestCoordinator
from ci_manager.errors import ImageError
from ci_manager.images import publish_images
from ci_manager.jenkins import JenkinsClient
from ci_manager.models import BuildResult, Outcome, RunIdentity, StagePlan, Trigger
from ci_manager.notify import SlackNotifier
from ci_manager.planner import plan as make_plan
from ci_manager.planner import should_run
from ci_manager.reporter import Reporter, XrayClient
from ci_manager.results import aggregate
from ci_manager.runners import CommandTestRunner
from ci_manager.scheduler import JenkinsEnqueuer, rearm
from ci_manager.sidecar import LogShipper
from ci_manager.utils import Deadline

_OUTCOME_STYLE = {
    Outcome.SUCCESS: "green",
    Outcome.UNSTABLE: "yellow",
    Outcome.FAILURE: "red",
    Outcome.ABORTED: "magenta",
    Outcome.SKIPPED: "dim",
}


def print_summary(results: dict[str, BuildResult], outcome: Outcome | None) -> None:
    """Print one row per stage and the overall outcome."""
    table = Table(title="Stage results")
    table.add_column("Stage")
    table.add_column("Outcome")
    table.add_column("Notes")
    for result in results.values():
        style = _OUTCOME_STYLE[result.outcome]
        table.add_row(result.stage, f"[{style}]{result.outcome.value}[/{style}]", "\n".join(result.annotations))
    console.print(table)
    if outcome is not None:
        style = _OUTCOME_STYLE[outcome]
        console.print(f"[{style}]Overall: {outcome.value}[/{style}]")


@dataclass
class Pipeline:
    """All collaborators of one run, wired explicitly.

    Attributes:
        cfg: Pipeline configuration.
        run: Identity of the current run.
        coordinator: Test execution coordinator.
        reporter: Result reporter and notifier.
        history: Callable returning prior outcomes of a branch, oldest first.
        enqueue: Fire-and-forget callable that queues a continuous run.
    """

    cfg: PipelineConfig
    run: RunIdentity
    coordinator: TestCoordinator
    reporter: Reporter
    history: Callable[[str], Sequence[Outcome]]
    enqueue: Callable[[str], None]

    def execute(self, trigger: Trigger) -> Outcome | None:
        """Run the whole pipeline for ``trigger``.

        Returns:
            The overall outcome, or None for a no-op run that executed no
            stage and reported nothing.
        """
        if not should_run(trigger):
            console.print(f"[yellow]ℹ️  {trigger.kind.value} run on {trigger.branch}: nothing to do[/yellow]")
            return None

        plan = make_plan(trigger, self.cfg)
        display_plan(plan, self.run, self.cfg)

        deadline = Deadline.from_minutes(self.cfg.timeout_minutes)
        results = self.coordinator.run(plan, deadline)
        executed = [r for r in results.values() if r.outcome is not Outcome.SKIPPED]
        if not executed:
            print_summary(results, None)
            return None

        outcome = Outcome.worst(r.outcome for r in executed)
        if outcome is Outcome.SUCCESS and plan.push_images:
            results[STAGE_PUBLISH] = self._publish(plan)
            outcome = Outcome.worst([outcome, results[STAGE_PUBLISH].outcome])

        print_summary(results, outcome)
        self._report(plan, outcome, results)
        rearm(plan, outcome, self.cfg, self.enqueue)
        return outcome

    def _publish(self, plan: StagePlan) -> BuildResult:
        try:
            publish_images(self.cfg, plan)
        except ImageError as e:
            return BuildResult(stage=STAGE_PUBLISH, outcome=Outcome.FAILURE, annotations=(str(e),))
        return BuildResult(stage=STAGE_PUBLISH, outcome=Outcome.SUCCESS)

    def _report(self, plan: StagePlan, outcome: Outcome, results: dict[str, BuildResult]) -> None:
        console.print(Panel.fit("Reporting", style="bold blue"))
        try:
            history = list(self.history(plan.branch))
        except requests.RequestException as e:
            logger.warning("Build history unavailable, skipping transition check: %s", e)
            history = []

        files = [path for result in results.values() for path in result.result_files]
        test_report = aggregate(files, plan, self.run.build_number) if files else None
        self.reporter.report(history, outcome, plan, test_report)


def build_pipeline(
    cfg: PipelineConfig | None = None,
    jenkins_cfg: JenkinsConfig | None = None,
    slack_cfg: SlackConfig | None = None,
    xray_cfg: XrayConfig | None = None,
    shipper_cfg: LogShipperConfig | None = None,
    context: RunContext | None = None,
    workdir: Path | None = None,
) -> Pipeline:
    """Wire a pipeline from configuration (environment and defaults when None)."""
    cfg = cfg or PipelineConfig()
    jenkins_cfg = jenkins_cfg or JenkinsConfig()
    slack_cfg = slack_cfg or SlackConfig()
    xray_cfg = xray_cfg or XrayConfig()
    shipper_cfg = shipper_cfg or LogShipperConfig()
    run = (context or RunContext()).identity()
    workdir = workdir or Path.cwd()

    jenkins = JenkinsClient(jenkins_cfg)
    notifier = SlackNotifier(slack_cfg)
    clusters = ClusterLifecycleManager(
        provider=JenkinsClusterProvider(jenkins),
        notifier=notifier,
        channel=slack_cfg.channel,
        workdir=workdir / "kube",
    )
    coordinator = TestCoordinator(
        cfg=cfg,
        runner=CommandTestRunner(workdir / cfg.results_dir, cwd=workdir),
        clusters=clusters,
        shipper=LogShipper(shipper_cfg) if shipper_cfg.enabled else None,
        run=run,
    )
    reporter = Reporter(
        notifier=notifier,
        slack_cfg=slack_cfg,
        pipeline_cfg=cfg,
        xray=XrayClient(xray_cfg) if xray_cfg.enabled else None,
        run=run,
    )

    def _history(branch: str) -> list[Outcome]:
        return jenkins.history(jenkins_cfg.pipeline_job, jenkins_cfg.history_depth,
                               before=run.build_number or None, branch=branch)

    return Pipeline(
        cfg=cfg,
        run=run,
        coordinator=coordinator,
        reporter=reporter,
        history=_history,
        enqueue=JenkinsEnqueuer(jenkins),
    )
