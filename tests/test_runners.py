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

"""Command template runner."""

from unittest.mock import patch

import pytest
import sh

from ci_manager.errors import SuiteFailure
from ci_manager.runners import CommandTestRunner
from ci_manager.utils import Deadline, render_command

VALUES = {"tag": "abc1234", "registry": "ci-registry", "profile": "ondemand",
          "tests": "install,csi", "build_number": "321", "kubeconfig": "/tmp/kubeconfig-1"}


@pytest.fixture
def mock_sh():
    with patch("ci_manager.runners.sh") as mock:
        mock.ErrorReturnCode = sh.ErrorReturnCode
        mock.CommandNotFound = sh.CommandNotFound
        mock.TimeoutException = sh.TimeoutException
        yield mock


def test_render_command_fills_placeholders():
    assert render_command(["run", "--tag", "{tag}"], VALUES) == ["run", "--tag", "abc1234"]


def test_e2e_command_gets_run_values_and_kubeconfig(mock_sh, tmp_path):
    result = CommandTestRunner(tmp_path).run("e2e", VALUES, Deadline(seconds=60))

    mock_sh.Command.assert_called_once_with("./scripts/e2e-test.sh")
    call = mock_sh.Command.return_value.call_args
    assert "--tag" in call.args and "abc1234" in call.args
    assert str(tmp_path / "e2e") in call.args
    assert call.kwargs["_env"]["KUBECONFIG"] == "/tmp/kubeconfig-1"
    assert result.exit_code == 0
    assert result.result_files == ()


def test_non_zero_exit_is_reported_not_raised(mock_sh, tmp_path):
    def _fail(*args, **kwargs):
        (tmp_path / "aux" / "moac.xml").write_text("<testsuite tests='1' failures='1'/>")
        raise sh.ErrorReturnCode_1("moac-test.sh", b"", b"")

    mock_sh.Command.return_value.side_effect = _fail
    result = CommandTestRunner(tmp_path).run("aux", VALUES, Deadline(seconds=60))

    assert result.exit_code == 1
    assert [p.name for p in result.result_files] == ["moac.xml"]


def test_missing_command_is_a_suite_failure(mock_sh, tmp_path):
    mock_sh.Command.side_effect = sh.CommandNotFound("nix-shell")
    with pytest.raises(SuiteFailure):
        CommandTestRunner(tmp_path).run("unit", VALUES, Deadline(seconds=60))


def test_unknown_suite_is_a_suite_failure(tmp_path):
    with pytest.raises(SuiteFailure):
        CommandTestRunner(tmp_path).run("bench", VALUES, Deadline(seconds=60))


def test_expired_deadline_raises_before_the_command_starts(mock_sh, tmp_path):
    with pytest.raises(sh.TimeoutException):
        CommandTestRunner(tmp_path).run("e2e", VALUES, Deadline(seconds=0))
    mock_sh.Command.return_value.assert_not_called()


def test_timeout_for_hands_out_the_remaining_budget():
    assert 0 < Deadline(seconds=60).timeout_for("unit") <= 60


def test_timeout_for_never_returns_zero():
    with pytest.raises(sh.TimeoutException):
        Deadline(seconds=0).timeout_for("unit")
