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

"""
Shared pytest fixtures for ci_manager tests.

Every external collaborator (cluster provider, chat, suite runner, log
shipper) is replaced by a recording fake so tests can assert on calls
without Jenkins, Helm or Docker.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import patch

import pytest

from ci_manager.cluster import ClusterLifecycleManager
from ci_manager.config import PipelineConfig, SlackConfig
from ci_manager.errors import DestroyError, ProvisionError, SidecarError
from ci_manager.models import RunIdentity
from ci_manager.runners import SuiteRun


PASSING_JUNIT = """<?xml version="1.0"?>
<testsuites>
  <testsuite name="{name}" tests="2" failures="0" errors="0" skipped="0">
    <testcase name="a"/>
    <testcase name="b"/>
  </testsuite>
</testsuites>
"""

FAILING_JUNIT = """<?xml version="1.0"?>
<testsuite name="{name}" tests="2" failures="1" errors="0" skipped="0">
  <testcase name="a"/>
  <testcase name="b"><failure message="boom"/></testcase>
</testsuite>
"""


def write_junit(directory: Path, name: str, failing: bool = False) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}.xml"
    path.write_text((FAILING_JUNIT if failing else PASSING_JUNIT).format(name=name))
    return path


# =============================================================================
# Fakes
# =============================================================================

class FakeNotifier:
    """Records notifications instead of posting them."""

    def __init__(self):
        self.sent: List[tuple] = []

    def notify(self, channel: str, severity: str, message: str) -> bool:
        self.sent.append((channel, severity, message))
        return True


class FakeProvider:
    """Cluster provider that hands out sequential build ids."""

    def __init__(self, next_id: int = 4242, fail_build: bool = False,
                 fail_destroy: bool = False, kubeconfig: Optional[bytes] = b"apiVersion: v1\n"):
        self.next_id = next_id
        self.fail_build = fail_build
        self.fail_destroy = fail_destroy
        self.kubeconfig_content = kubeconfig
        self.built: List[str] = []
        self.destroyed: List[int] = []

    def build(self, environment_kind, run, deadline) -> int:
        self.built.append(environment_kind)
        if self.fail_build:
            raise ProvisionError("k8s-build-cluster#1 finished with FAILURE")
        return self.next_id

    def kubeconfig(self, build_id):
        return self.kubeconfig_content

    def destroy(self, build_id, deadline) -> None:
        self.destroyed.append(build_id)
        if self.fail_destroy:
            raise DestroyError("k8s-destroy-cluster#9 finished with FAILURE")

    def build_job_ref(self, build_id):
        return f"https://jenkins/job/k8s-build-cluster/{build_id}"

    def destroy_action_ref(self, build_id):
        return f"https://jenkins/job/k8s-destroy-cluster/parambuild?BUILD_ID={build_id}"

    def kubeconfig_location(self, build_id):
        return f"https://jenkins/job/k8s-build-cluster/{build_id}/artifact/admin.conf"


@dataclass
class FakeRunner:
    """Returns canned suite runs; exceptions in ``errors`` are raised instead."""

    runs: Dict[str, SuiteRun] = field(default_factory=dict)
    errors: Dict[str, Exception] = field(default_factory=dict)
    calls: List[tuple] = field(default_factory=list)

    def run(self, suite, values, deadline):
        self.calls.append((suite, dict(values)))
        if suite in self.errors:
            raise self.errors[suite]
        return self.runs.get(suite, SuiteRun(result_files=(), exit_code=0))


class FakeShipper:
    """Log shipper that records install/uninstall calls."""

    def __init__(self, fail_install: bool = False, fail_uninstall: bool = False):
        self.fail_install = fail_install
        self.fail_uninstall = fail_uninstall
        self.installed: List[tuple] = []
        self.uninstalled: List[tuple] = []

    def install(self, credentials, run_id, version_tag, deadline):
        self.installed.append((run_id, version_tag))
        if self.fail_install:
            raise SidecarError("helm install failed")

    def uninstall(self, credentials, run_id, version_tag):
        self.uninstalled.append((run_id, version_tag))
        if self.fail_uninstall:
            raise SidecarError("helm uninstall failed")


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def pipeline_cfg():
    return PipelineConfig(continuous_enabled=True)


@pytest.fixture
def slack_cfg():
    return SlackConfig(webhook_url="")


@pytest.fixture
def run_identity():
    return RunIdentity(job_name="mayastor/develop", build_number=321, build_url="https://jenkins/job/mayastor/321/")


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def clusters(provider, notifier, tmp_path):
    return ClusterLifecycleManager(provider=provider, notifier=notifier, channel="#ci", workdir=tmp_path / "kube")


@pytest.fixture(autouse=True)
def no_kubectl():
    """Node listing shells out to kubectl; keep it offline."""
    with patch("ci_manager.cluster.list_nodes", return_value="node-1   Ready\nnode-2   Ready") as mock:
        yield mock
