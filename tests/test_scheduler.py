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

"""Continuous-loop re-arming."""

from unittest.mock import MagicMock

import pytest
import requests

from ci_manager.config import JenkinsConfig, PipelineConfig
from ci_manager.constants import CONTINUOUS_PARAM, TRIGGER_PARAM
from ci_manager.jenkins import JenkinsClient
from ci_manager.models import Outcome, Trigger, TriggerKind
from ci_manager.planner import plan
from ci_manager.scheduler import JenkinsEnqueuer, rearm


def _plan(continuous=True, branch="main"):
    return plan(Trigger(kind=TriggerKind.MANUAL, branch=branch, revision="abc", continuous=continuous),
                PipelineConfig())


def test_successful_continuous_run_enqueues_exactly_one_run():
    enqueue = MagicMock()
    assert rearm(_plan(), Outcome.SUCCESS, PipelineConfig(continuous_enabled=True), enqueue)
    enqueue.assert_called_once_with("main")


@pytest.mark.parametrize("outcome", [Outcome.FAILURE, Outcome.UNSTABLE, Outcome.ABORTED])
def test_unsuccessful_run_is_not_rearmed(outcome):
    enqueue = MagicMock()
    assert not rearm(_plan(), outcome, PipelineConfig(continuous_enabled=True), enqueue)
    enqueue.assert_not_called()


def test_switch_off_stops_the_loop():
    enqueue = MagicMock()
    assert not rearm(_plan(), Outcome.SUCCESS, PipelineConfig(continuous_enabled=False), enqueue)
    enqueue.assert_not_called()


def test_non_continuous_run_is_not_rearmed():
    enqueue = MagicMock()
    assert not rearm(_plan(continuous=False), Outcome.SUCCESS, PipelineConfig(continuous_enabled=True), enqueue)
    enqueue.assert_not_called()


def test_enqueue_error_is_logged_not_raised(caplog):
    enqueue = MagicMock(side_effect=requests.HTTPError("403 Forbidden"))

    assert not rearm(_plan(), Outcome.SUCCESS, PipelineConfig(continuous_enabled=True), enqueue)
    enqueue.assert_called_once_with("main")
    assert "403 Forbidden" in caplog.text


def test_jenkins_enqueuer_triggers_branch_job_in_continuous_mode():
    client = MagicMock(spec=JenkinsClient)
    client.cfg = JenkinsConfig(pipeline_job="mayastor")

    JenkinsEnqueuer(client)("release/1.0")

    client.trigger.assert_called_once_with(
        "mayastor", {CONTINUOUS_PARAM: "true", TRIGGER_PARAM: "continuous"}, branch="release/1.0"
    )
