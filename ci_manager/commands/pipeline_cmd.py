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

"""Pipeline subcommands (run, plan, history)."""

from __future__ import annotations

import os

import sh
import typer

from ci_manager import console
from ci_manager.config import JenkinsConfig, PipelineConfig, RunContext, display_plan
from ci_manager.constants import CONTINUOUS_PARAM, TRIGGER_PARAM
from ci_manager.jenkins import JenkinsClient
from ci_manager.models import Outcome, Trigger, TriggerKind
from ci_manager.pipeline import build_pipeline
from ci_manager.planner import plan as make_plan
from ci_manager.planner import should_run
from ci_manager.reporter import previous_real_outcome

app = typer.Typer(help="Plan and run the test pipeline.")


def _resolve_trigger(kind: TriggerKind, branch: str | None, revision: str | None, continuous: bool) -> Trigger:
    """Build the run's trigger. CLI > BRANCH_NAME/GIT_COMMIT > git."""
    branch = branch or os.environ.get("BRANCH_NAME")
    if not branch:
        branch = str(sh.git("rev-parse", "--abbrev-ref", "HEAD")).strip()
    revision = revision or os.environ.get("GIT_COMMIT")
    if not revision:
        revision = str(sh.git("rev-parse", "HEAD")).strip()
    return Trigger(kind=kind, branch=branch, revision=revision, continuous=continuous)


def _pipeline_config(continuous_enabled: bool | None, timeout: int | None) -> PipelineConfig:
    cfg = PipelineConfig()
    overrides: dict = {}
    if continuous_enabled is not None:
        overrides["continuous_enabled"] = continuous_enabled
    if timeout is not None:
        overrides["timeout_minutes"] = timeout
    if overrides:
        cfg = cfg.model_copy(update=overrides)
    return cfg


@app.command()
def run(
    trigger: TriggerKind = typer.Option(
        TriggerKind.MANUAL, "--trigger", envvar=TRIGGER_PARAM, help="Why this run started"),
    branch: str | None = typer.Option(None, "--branch", help="Branch under test (default: BRANCH_NAME)"),
    revision: str | None = typer.Option(None, "--revision", help="Revision under test (default: GIT_COMMIT)"),
    continuous: bool = typer.Option(False, "--continuous", envvar=CONTINUOUS_PARAM, help="Run in continuous mode"),
    continuous_enabled: bool | None = typer.Option(
        None, "--continuous-enabled/--continuous-disabled", help="Override CI_CONTINUOUS_ENABLED"),
    timeout: int | None = typer.Option(None, "--timeout", help="Run timeout in minutes"),
) -> None:
    """Plan, run, report and (in continuous mode) re-arm."""
    resolved = _resolve_trigger(trigger, branch, revision, continuous)
    pipeline = build_pipeline(cfg=_pipeline_config(continuous_enabled, timeout))
    outcome = pipeline.execute(resolved)
    if outcome in (Outcome.FAILURE, Outcome.ABORTED):
        raise typer.Exit(code=1)


@app.command()
def plan(
    trigger: TriggerKind = typer.Option(
        TriggerKind.MANUAL, "--trigger", envvar=TRIGGER_PARAM, help="Why this run started"),
    branch: str | None = typer.Option(None, "--branch", help="Branch under test (default: BRANCH_NAME)"),
    revision: str | None = typer.Option(None, "--revision", help="Revision under test (default: GIT_COMMIT)"),
    continuous: bool = typer.Option(False, "--continuous", envvar=CONTINUOUS_PARAM, help="Plan for continuous mode"),
) -> None:
    """Print the stage plan a run would use, without running anything."""
    resolved = _resolve_trigger(trigger, branch, revision, continuous)
    if not should_run(resolved):
        console.print(f"[yellow]ℹ️  {resolved.kind.value} run: nothing to do[/yellow]")
        return
    cfg = PipelineConfig()
    display_plan(make_plan(resolved, cfg), RunContext().identity(), cfg)


@app.command()
def history(
    branch: str = typer.Option(..., "--branch", help="Branch whose history to show"),
    depth: int | None = typer.Option(None, "--depth", help="Number of builds to fetch"),
) -> None:
    """Show recent outcomes and the last one that was not aborted."""
    jenkins_cfg = JenkinsConfig()
    client = JenkinsClient(jenkins_cfg)
    outcomes = client.history(jenkins_cfg.pipeline_job, depth or jenkins_cfg.history_depth, branch=branch)
    console.print(" → ".join(o.value for o in outcomes) or "(no builds)")
    previous = previous_real_outcome(outcomes)
    console.print(f"Previous real outcome: {previous.value if previous else '(none)'}")
