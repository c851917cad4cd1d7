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

"""Continuous mode: re-arm the next run after a successful one."""

from __future__ import annotations

from collections.abc import Callable

import requests

from ci_manager import console, logger
from ci_manager.config import PipelineConfig
from ci_manager.constants import CONTINUOUS_PARAM, TRIGGER_PARAM
from ci_manager.jenkins import JenkinsClient
from ci_manager.models import Outcome, StagePlan, TriggerKind


def should_rearm(plan: StagePlan, outcome: Outcome, cfg: PipelineConfig) -> bool:
    return plan.continuous and outcome is Outcome.SUCCESS and cfg.continuous_enabled


def rearm(plan: StagePlan, outcome: Outcome, cfg: PipelineConfig, enqueue: Callable[[str], None]) -> bool:
    """Enqueue the next continuous run for the same branch.

    Args:
        plan: Plan of the run that just finished.
        outcome: Its overall outcome.
        cfg: Pipeline configuration holding the continuous switch.
        enqueue: Fire-and-forget callable taking the branch name.

    Returns:
        True if a new run was enqueued. Queueing errors are logged, not raised.
    """
    if not should_rearm(plan, outcome, cfg):
        return False
    try:
        enqueue(plan.branch)
    except requests.RequestException as e:
        logger.warning("Next continuous run not queued for %s: %s", plan.branch, e)
        console.print(f"[yellow]⚠️  Continuous loop on {plan.branch} stopped: {e}[/yellow]")
        return False
    console.print(f"[green]🔁 Next continuous run queued for {plan.branch}[/green]")
    return True


class JenkinsEnqueuer:
    """Queues a continuous-mode build of a branch without waiting for it."""

    def __init__(self, client: JenkinsClient) -> None:
        self.client = client

    def __call__(self, branch: str) -> None:
        params = {CONTINUOUS_PARAM: "true", TRIGGER_PARAM: TriggerKind.CONTINUOUS.value}
        self.client.trigger(self.client.cfg.pipeline_job, params, branch=branch)
