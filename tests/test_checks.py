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

"""Always-run host checks and image handling, with sh and docker mocked."""

from datetime import datetime
from unittest.mock import MagicMock, patch

import docker
import pytest
import sh

from ci_manager.checks import (
    attribute_coredumps,
    container_label,
    coredump_executable,
    coredump_marker,
    find_coredumps,
    remove_leftover_containers,
)
from ci_manager.config import PipelineConfig
from ci_manager.errors import ImageError
from ci_manager.images import build_images, publish_images, push_images
from ci_manager.models import Trigger, TriggerKind
from ci_manager.planner import plan
from ci_manager.utils import Deadline


@pytest.fixture
def mock_sh():
    with patch("ci_manager.checks.sh") as mock:
        mock.ErrorReturnCode = sh.ErrorReturnCode
        mock.CommandNotFound = sh.CommandNotFound
        yield mock


def test_find_coredumps_lists_entries(mock_sh):
    mock_sh.coredumpctl.return_value = "Mon 2026-10-19 10:00:00 UTC 42 0 0 SIGSEGV present /bin/mayastor\n\n"
    assert find_coredumps("2026-10-19 09:00:00") == [
        "Mon 2026-10-19 10:00:00 UTC 42 0 0 SIGSEGV present /bin/mayastor"
    ]
    args = mock_sh.coredumpctl.call_args
    assert "--since" in args.args
    assert args.kwargs["_ok_code"] == [0, 1]


def test_marker_is_passed_as_since(mock_sh):
    mock_sh.coredumpctl.return_value = ""
    since = coredump_marker()
    datetime.strptime(since, "%Y-%m-%d %H:%M:%S")

    find_coredumps(since)

    args = mock_sh.coredumpctl.call_args.args
    assert args[args.index("--since") + 1] == since


def test_find_coredumps_none_recorded(mock_sh):
    mock_sh.coredumpctl.return_value = ""
    assert find_coredumps("2026-10-19 09:00:00") == []


def test_find_coredumps_unavailable(mock_sh):
    mock_sh.coredumpctl.side_effect = sh.CommandNotFound("coredumpctl")
    assert find_coredumps("2026-10-19 09:00:00") is None


def test_leftover_containers_are_force_removed():
    container = MagicMock()
    container.name = "nvmf-target-1"
    client = MagicMock()
    client.containers.list.return_value = [container]
    with patch("ci_manager.checks.docker.from_env", return_value=client):
        assert remove_leftover_containers(container_label(321, "grpc")) == ["nvmf-target-1"]

    client.containers.list.assert_called_once_with(all=True, filters={"label": "io.mayastor.test=321-grpc"})
    container.remove.assert_called_once_with(force=True)
    client.close.assert_called_once()


def test_leftover_check_without_docker():
    with patch("ci_manager.checks.docker.from_env", side_effect=docker.errors.DockerException("no socket")):
        assert remove_leftover_containers(container_label(1, "unit")) == []


def test_container_label_is_scoped_to_run_and_stage():
    assert container_label(321, "unit") == "io.mayastor.test=321-unit"
    assert container_label(321, "unit") != container_label(321, "grpc")


def test_coredump_executable_is_last_path():
    line = "Mon 2026-10-19 10:00:00 UTC 42 0 0 SIGSEGV present /src/target/debug/mayastor 3.1M"
    assert coredump_executable(line) == "/src/target/debug/mayastor"
    assert coredump_executable("garbage") == ""


def test_coredumps_are_attributed_by_executable():
    owners = {"unit": ["*/target/debug/deps/*"], "grpc": ["*/target/debug/mayastor", "*/node"]}
    unit_core = "Mon 2026-10-19 10:00:00 UTC 1 0 0 SIGSEGV present /src/target/debug/deps/io_test-9f"
    grpc_core = "Mon 2026-10-19 10:00:01 UTC 2 0 0 SIGABRT present /usr/bin/node"
    stray_core = "Mon 2026-10-19 10:00:02 UTC 3 0 0 SIGSEGV present /usr/sbin/dockerd"

    assigned = attribute_coredumps([unit_core, grpc_core, stray_core], owners)

    assert assigned == {"unit": [unit_core, stray_core], "grpc": [grpc_core, stray_core]}


def test_no_coredumps_assigns_nothing():
    assert attribute_coredumps([], {"unit": ["*"], "grpc": []}) == {"unit": [], "grpc": []}


# =============================================================================
# Images
# =============================================================================

def _plan(kind=TriggerKind.TIMER):
    return plan(Trigger(kind=kind, branch="develop", revision="0123456789"), PipelineConfig())


def test_build_images_passes_tags():
    with patch("ci_manager.images.sh") as mock:
        mock.ErrorReturnCode = sh.ErrorReturnCode
        mock.CommandNotFound = sh.CommandNotFound
        mock.TimeoutException = sh.TimeoutException
        build_images(PipelineConfig(build_command="./scripts/release.sh"), _plan(), Deadline(seconds=60))

    mock.Command.assert_called_once_with("./scripts/release.sh")
    args = mock.Command.return_value.call_args.args
    assert args == ("--skip-publish", "--tag", "nightly", "--alias-tag", "nightly")


def test_build_failure_raises_image_error():
    with patch("ci_manager.images.sh") as mock:
        mock.ErrorReturnCode = sh.ErrorReturnCode
        mock.CommandNotFound = sh.CommandNotFound
        mock.TimeoutException = sh.TimeoutException
        mock.Command.return_value.side_effect = sh.ErrorReturnCode("release.sh", b"", b"nix failed")
        with pytest.raises(ImageError):
            build_images(PipelineConfig(), _plan(), Deadline(seconds=60))


def test_build_with_expired_deadline_never_starts():
    with patch("ci_manager.images.sh") as mock:
        mock.ErrorReturnCode = sh.ErrorReturnCode
        mock.CommandNotFound = sh.CommandNotFound
        mock.TimeoutException = sh.TimeoutException
        with pytest.raises(ImageError):
            build_images(PipelineConfig(), _plan(), Deadline(seconds=0))

    mock.Command.return_value.assert_not_called()


def test_publish_pushes_tag_and_alias():
    cfg = PipelineConfig(images=["mayastor"], public_registry="docker.io", image_namespace="mayadata")
    client = MagicMock()
    client.images.push.return_value = iter([{"status": "Pushed"}])
    with patch("ci_manager.images.docker.from_env", return_value=client):
        publish_images(cfg, _plan(kind=TriggerKind.MANUAL))

    client.images.get.assert_called_once_with("mayadata/mayastor:0123456")
    image = client.images.get.return_value
    assert [c.kwargs["tag"] for c in image.tag.call_args_list] == ["0123456", "ci"]
    assert image.tag.call_args.args == ("docker.io/mayadata/mayastor",)


def test_push_error_in_stream_raises():
    cfg = PipelineConfig(images=["mayastor", "moac"])
    client = MagicMock()
    client.images.push.side_effect = lambda repo, tag, stream, decode: iter([{"error": "denied"}])
    with patch("ci_manager.images.docker.from_env", return_value=client):
        with pytest.raises(ImageError, match="2 images"):
            push_images(cfg, "ci-registry.example", "abc", ["abc"])
