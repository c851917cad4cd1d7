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

"""Transition notifications, continuous alerts and test-management submission."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

from ci_manager.config import PipelineConfig, SlackConfig, XrayConfig
from ci_manager.errors import ReportSubmissionError
from ci_manager.models import Outcome, SuiteCounts, TestReport, Trigger, TriggerKind
from ci_manager.planner import plan
from ci_manager.reporter import BROKEN, FIXED, Reporter, XrayClient, previous_real_outcome, transition

S, F, U, A = Outcome.SUCCESS, Outcome.FAILURE, Outcome.UNSTABLE, Outcome.ABORTED


def test_previous_real_outcome_skips_aborted():
    assert previous_real_outcome([S, S, A]) is S
    assert previous_real_outcome([F, A, A, A]) is F
    assert previous_real_outcome([A, A]) is None
    assert previous_real_outcome([]) is None


def test_long_aborted_streak_is_walked_without_recursion():
    assert previous_real_outcome([F] + [A] * 5000) is F


def test_aborted_run_is_transparent_to_transition():
    # history [Success, Success, Aborted] followed by Failure
    assert transition([S, S, A], F) == BROKEN


def test_repeated_failure_does_not_notify_again():
    assert transition([F], F) is None


@pytest.mark.parametrize("history,current,expected", [
    ([F], S, FIXED),
    ([U, A], S, FIXED),
    ([S], U, BROKEN),
    ([S], S, None),
    ([F], U, None),
    ([S], A, None),
    ([], F, None),
    ([], S, None),
])
def test_transition_table(history, current, expected):
    assert transition(history, current) == expected


@pytest.fixture
def reporter(notifier, run_identity):
    return Reporter(
        notifier=notifier,
        slack_cfg=SlackConfig(channel="#backend", continuous_channel="#e2e"),
        pipeline_cfg=PipelineConfig(),
        xray=None,
        run=run_identity,
    )


def _plan(branch="develop", continuous=False, kind=TriggerKind.MANUAL):
    return plan(Trigger(kind=kind, branch=branch, revision="abcdef1234", continuous=continuous), PipelineConfig())


def test_broken_branch_notifies_once(reporter, notifier):
    reporter.report([S, S, A], F, _plan())
    assert len(notifier.sent) == 1
    channel, severity, message = notifier.sent[0]
    assert channel == "#backend"
    assert severity == "danger"
    assert "develop is broken" in message

    notifier.sent.clear()
    reporter.report([S, S, A, F], F, _plan())
    assert notifier.sent == []


def test_fixed_branch_notifies(reporter, notifier):
    reporter.report([F], S, _plan())
    assert notifier.sent[0][1] == "good"
    assert "has been fixed" in notifier.sent[0][2]


def test_non_notify_branch_is_quiet(reporter, notifier):
    reporter.report([S], F, _plan(branch="feature/foo"))
    assert notifier.sent == []


def test_continuous_failure_always_notifies(reporter, notifier):
    continuous = _plan(continuous=True)
    reporter.report([F, F], F, continuous)
    channels = [sent[0] for sent in notifier.sent]
    assert channels == ["#e2e"]

    notifier.sent.clear()
    reporter.report([F], S, continuous)
    assert [sent[0] for sent in notifier.sent] == ["#backend"]


def _report(tmp_path: Path) -> TestReport:
    path = tmp_path / "e2e.xml"
    path.write_text("<testsuite/>")
    return TestReport(build_number=321, branch="develop", tag="abcdef1", test_plan_id="MQ-1",
                      suites=(SuiteCounts(name="e2e", source=path, tests=3, failures=1),))


def test_submission_failure_is_not_fatal(notifier, run_identity, tmp_path):
    xray = MagicMock(spec=XrayClient)
    xray.submit.side_effect = ReportSubmissionError("503")
    reporter = Reporter(notifier, SlackConfig(), PipelineConfig(), xray, run_identity)

    assert reporter.submit(_plan(), _report(tmp_path)) is False
    xray.submit.assert_called_once()


def test_dry_run_results_are_not_submitted(notifier, run_identity, tmp_path):
    xray = MagicMock(spec=XrayClient)
    reporter = Reporter(notifier, SlackConfig(), PipelineConfig(), xray, run_identity)

    assert reporter.submit(_plan(branch="trying"), _report(tmp_path)) is False
    xray.submit.assert_not_called()


def test_xray_submission_tags_plan_and_version(tmp_path):
    session = MagicMock(spec=requests.Session)
    session.headers = {}
    response = MagicMock()
    response.json.return_value = {"key": "MQ-900"}
    session.post.return_value = response
    client = XrayClient(XrayConfig(enabled=True, url="https://jira", token="t", project_key="MQ"), session=session)

    keys = client.submit(_report(tmp_path), "develop #321", "desc")

    assert keys == ["MQ-900"]
    files = session.post.call_args.kwargs["files"]
    info = files["info"][1]
    assert '"testPlanKey": "MQ-1"' in info
    assert '"version": "abcdef1"' in info
    assert session.headers["Authorization"] == "Bearer t"


def test_xray_http_error_raises_submission_error(tmp_path):
    session = MagicMock(spec=requests.Session)
    session.headers = {}
    response = MagicMock()
    response.raise_for_status.side_effect = requests.HTTPError("400")
    session.post.return_value = response
    client = XrayClient(XrayConfig(url="https://jira"), session=session)

    with pytest.raises(ReportSubmissionError):
        client.submit(_report(tmp_path), "s", "d")
