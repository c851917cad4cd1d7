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

"""Value types shared by the planner, coordinator and reporter."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


# ============================================================================
# Triggers
# ============================================================================

class TriggerKind(str, Enum):
    """Why a run started. Chosen once at run entry."""

    MANUAL = "manual"
    TIMER = "timer"
    CONTINUOUS = "continuous"
    BRANCH_EVENT = "branch-event"
    BRANCH_INDEXING = "branch-indexing"


@dataclass(frozen=True)
class Trigger:
    """The reason a run started.

    Attributes:
        kind: Trigger classification.
        branch: Branch being built.
        revision: Full revision identifier of the source being built.
        continuous: Whether the run was requested in continuous mode.
    """

    kind: TriggerKind
    branch: str
    revision: str = ""
    continuous: bool = False

    @property
    def is_continuous(self) -> bool:
        return self.continuous or self.kind is TriggerKind.CONTINUOUS


# ============================================================================
# Stage plan
# ============================================================================

class E2EProfile(str, Enum):
    ONDEMAND = "ondemand"
    EXTENDED = "extended"
    CONTINUOUS = "continuous"


class AliasTag(str, Enum):
    NIGHTLY = "nightly"
    CI = "ci"


@dataclass(frozen=True)
class StagePlan:
    """Resolved set of suites, image strategy and reporting target for one run.

    Attributes:
        run_linter: Whether the linter stage runs.
        run_unit_tests: Whether the unit test suite runs.
        run_grpc_tests: Whether the protocol-layer (gRPC) suite runs.
        run_aux_tests: Whether the auxiliary-component suite runs.
        run_e2e: Whether the E2E sub-pipeline runs.
        e2e_profile: Which set of E2E tests to run.
        build_images: Whether images are built from source for this run.
        push_images: Whether images are published after a successful run.
        image_tag: Tag of the images under test.
        test_plan_id: Test-management plan the results belong to.
        alias_tag: Floating tag published alongside ``image_tag``.
        branch: Branch being built.
        continuous: Whether this is a continuous-mode run.
        report_test_results: Whether results go to the test-management system.
    """

    run_linter: bool
    run_unit_tests: bool
    run_grpc_tests: bool
    run_aux_tests: bool
    run_e2e: bool
    e2e_profile: E2EProfile
    build_images: bool
    push_images: bool
    image_tag: str
    test_plan_id: str
    alias_tag: AliasTag
    branch: str
    continuous: bool = False
    report_test_results: bool = True


# ============================================================================
# Cluster
# ============================================================================

@dataclass(frozen=True)
class ClusterHandle:
    """Identifies a provisioned ephemeral cluster.

    Attributes:
        provider_job_id: Numeric id of the cluster-build job.
        environment_kind: Provider environment the cluster was built in.
        kubeconfig_location: Where the provider publishes the kubeconfig.
    """

    provider_job_id: int
    environment_kind: str
    kubeconfig_location: str


@dataclass(frozen=True)
class KubeCredentials:
    kubeconfig: Path


@dataclass(frozen=True)
class RunIdentity:
    """Identity of the pipeline run, as reported by the CI server."""

    job_name: str
    build_number: int
    build_url: str = ""

    def __str__(self) -> str:
        return f"{self.job_name}#{self.build_number}"


@dataclass(frozen=True)
class DiagnosticSnapshot:
    """Everything a human needs to find, inspect and reclaim a kept cluster."""

    cluster_build_id: int
    build_job_ref: str
    destroy_action_ref: str
    run: RunIdentity
    nodes: str
    kubeconfig_location: str
    reason: str

    def render(self) -> str:
        return "\n".join([
            f"Test cluster from build {self.cluster_build_id} was kept for debugging "
            f"after a failure in {self.run}.",
            f"Reason: {self.reason}",
            f"Cluster build job: {self.build_job_ref}",
            f"Kubeconfig: {self.kubeconfig_location}",
            f"Destroy it with: {self.destroy_action_ref}",
            "Nodes:",
            self.nodes or "(node list unavailable)",
        ])


# ============================================================================
# Results
# ============================================================================

class Outcome(str, Enum):
    """Stage or build outcome. Declaration order is severity order."""

    SKIPPED = "SKIPPED"
    SUCCESS = "SUCCESS"
    UNSTABLE = "UNSTABLE"
    FAILURE = "FAILURE"
    ABORTED = "ABORTED"

    @property
    def severity(self) -> int:
        return list(Outcome).index(self)

    @classmethod
    def worst(cls, outcomes) -> Outcome:
        """Return the most severe outcome, SUCCESS for an empty input."""
        result = cls.SUCCESS
        for outcome in outcomes:
            if outcome.severity > result.severity:
                result = outcome
        return result


@dataclass(frozen=True)
class BuildResult:
    stage: str
    outcome: Outcome
    annotations: tuple[str, ...] = ()
    result_files: tuple[Path, ...] = ()


@dataclass(frozen=True)
class SuiteCounts:
    """Pass/fail counts of one test suite from one result file."""

    name: str
    source: Path
    tests: int = 0
    failures: int = 0
    errors: int = 0
    skipped: int = 0

    @property
    def passed(self) -> int:
        return self.tests - self.failures - self.errors - self.skipped

    @property
    def failed(self) -> int:
        return self.failures + self.errors


@dataclass(frozen=True)
class TestReport:
    """Aggregated suite results plus reporting metadata."""

    __test__ = False

    build_number: int
    branch: str
    tag: str
    test_plan_id: str
    suites: tuple[SuiteCounts, ...] = field(default_factory=tuple)

    @property
    def result_files(self) -> tuple[Path, ...]:
        return tuple(dict.fromkeys(s.source for s in self.suites))

    @property
    def total(self) -> int:
        return sum(s.tests for s in self.suites)

    @property
    def failed(self) -> int:
        return sum(s.failed for s in self.suites)

    @property
    def passed(self) -> int:
        return sum(s.passed for s in self.suites)
