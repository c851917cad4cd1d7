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

"""Configuration classes, run context, and config display."""

from __future__ import annotations

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.panel import Panel

from ci_manager import console
from ci_manager.constants import (
    DEFAULT_BUILD_CLUSTER_JOB,
    DEFAULT_BUILD_COMMAND,
    DEFAULT_CI_REGISTRY,
    DEFAULT_CONTINUOUS_SLACK_CHANNEL,
    DEFAULT_CONTINUOUS_TAG,
    DEFAULT_CONTINUOUS_TEST_PLAN,
    DEFAULT_DESTROY_CLUSTER_JOB,
    DEFAULT_DRY_RUN_BRANCHES,
    DEFAULT_ENVIRONMENT_KIND,
    DEFAULT_HISTORY_DEPTH,
    DEFAULT_IMAGE_NAMESPACE,
    DEFAULT_IMAGES,
    DEFAULT_JENKINS_URL,
    DEFAULT_LOG_SHIPPER_NAMESPACE,
    DEFAULT_LOG_SHIPPER_RELEASE_PREFIX,
    DEFAULT_MERGE_GATE_BRANCHES,
    DEFAULT_NIGHTLY_TAG,
    DEFAULT_NIGHTLY_TEST_PLAN,
    DEFAULT_NOTIFY_BRANCHES,
    DEFAULT_ONDEMAND_TEST_PLAN,
    DEFAULT_PIPELINE_JOB,
    DEFAULT_PROTECTED_BRANCHES,
    DEFAULT_PUBLIC_REGISTRY,
    DEFAULT_SHORT_REVISION_LENGTH,
    DEFAULT_SLACK_CHANNEL,
    DEFAULT_TEST_PROJECT_KEY,
    DEFAULT_TIMEOUT_MINUTES,
    JOB_POLL_INTERVAL_SECONDS,
    suite_value,
)
from ci_manager.models import RunIdentity, StagePlan


# ============================================================================
# Configuration classes
# ============================================================================

class PipelineConfig(BaseSettings):
    """Planning and image settings, auto-loaded from CI_* env vars.

    Branch lists hold ``fnmatch`` patterns and are read as JSON arrays from
    the environment (e.g. ``CI_PROTECTED_BRANCHES='["main", "release/*"]'``).

    Attributes:
        protected_branches: Branches whose images may be published.
        merge_gate_branches: Merge-gate branches that run the short E2E profile.
        dry_run_branches: Merge-gate dry-run branches; never publish or report.
        notify_branches: Branches that get broken/fixed chat notifications.
        continuous_tag: Pre-published image tag reused in continuous mode.
        nightly_tag: Image tag used for timer-triggered builds.
        short_revision_length: Characters of the revision used as image tag.
        ondemand_test_plan: Test plan for manually triggered and branch runs.
        nightly_test_plan: Test plan for timer-triggered runs.
        continuous_test_plan: Test plan for continuous-mode runs.
        continuous_enabled: Global switch for re-arming continuous runs.
        environment_kind: Cluster provider environment for E2E clusters.
        ci_registry: Registry the E2E cluster pulls images under test from.
        public_registry: Registry images are published to.
        image_namespace: Repository namespace of the published images.
        images: Names of the images built and published by a run.
        build_command: Command that builds the images from source.
        results_dir: Directory suites write their result files into.
        timeout_minutes: Wall-clock bound on the whole run.
    """

    model_config = SettingsConfigDict(env_prefix="CI_", extra="ignore")

    protected_branches: list[str] = Field(default_factory=lambda: list(DEFAULT_PROTECTED_BRANCHES))
    merge_gate_branches: list[str] = Field(default_factory=lambda: list(DEFAULT_MERGE_GATE_BRANCHES))
    dry_run_branches: list[str] = Field(default_factory=lambda: list(DEFAULT_DRY_RUN_BRANCHES))
    notify_branches: list[str] = Field(default_factory=lambda: list(DEFAULT_NOTIFY_BRANCHES))
    continuous_tag: str = DEFAULT_CONTINUOUS_TAG
    nightly_tag: str = DEFAULT_NIGHTLY_TAG
    short_revision_length: int = Field(default=DEFAULT_SHORT_REVISION_LENGTH, ge=4, le=40)
    ondemand_test_plan: str = DEFAULT_ONDEMAND_TEST_PLAN
    nightly_test_plan: str = DEFAULT_NIGHTLY_TEST_PLAN
    continuous_test_plan: str = DEFAULT_CONTINUOUS_TEST_PLAN
    continuous_enabled: bool = False
    environment_kind: str = DEFAULT_ENVIRONMENT_KIND
    ci_registry: str = DEFAULT_CI_REGISTRY
    public_registry: str = DEFAULT_PUBLIC_REGISTRY
    image_namespace: str = DEFAULT_IMAGE_NAMESPACE
    images: list[str] = Field(default_factory=lambda: list(DEFAULT_IMAGES))
    build_command: str = DEFAULT_BUILD_COMMAND
    results_dir: str = "artifacts/results"
    timeout_minutes: int = Field(default=DEFAULT_TIMEOUT_MINUTES, ge=1)


class JenkinsConfig(BaseSettings):
    """Jenkins server access, auto-loaded from CI_JENKINS_* env vars.

    Attributes:
        url: Base URL of the Jenkins server.
        user: API user name.
        token: API token for ``user``.
        build_cluster_job: Job that builds an ephemeral cluster.
        destroy_cluster_job: Job that destroys a cluster by build id.
        pipeline_job: Job path of this pipeline, used for history and re-arming.
        history_depth: How many past builds are fetched for transition checks.
        poll_interval: Seconds between polls of a running job.
    """

    model_config = SettingsConfigDict(env_prefix="CI_JENKINS_", extra="ignore")

    url: str = DEFAULT_JENKINS_URL
    user: str = ""
    token: str = ""
    build_cluster_job: str = DEFAULT_BUILD_CLUSTER_JOB
    destroy_cluster_job: str = DEFAULT_DESTROY_CLUSTER_JOB
    pipeline_job: str = DEFAULT_PIPELINE_JOB
    history_depth: int = Field(default=DEFAULT_HISTORY_DEPTH, ge=1, le=500)
    poll_interval: int = Field(default=JOB_POLL_INTERVAL_SECONDS, ge=1)


class SlackConfig(BaseSettings):
    """Chat notifier settings, auto-loaded from CI_SLACK_* env vars."""

    model_config = SettingsConfigDict(env_prefix="CI_SLACK_", extra="ignore")

    webhook_url: str = ""
    channel: str = DEFAULT_SLACK_CHANNEL
    continuous_channel: str = DEFAULT_CONTINUOUS_SLACK_CHANNEL


class XrayConfig(BaseSettings):
    """Test-management settings, auto-loaded from CI_XRAY_* env vars."""

    model_config = SettingsConfigDict(env_prefix="CI_XRAY_", extra="ignore")

    enabled: bool = False
    url: str = ""
    token: str = ""
    project_key: str = DEFAULT_TEST_PROJECT_KEY


class LogShipperConfig(BaseSettings):
    """Log-shipping sidecar settings, auto-loaded from CI_LOG_SHIPPER_* env vars."""

    model_config = SettingsConfigDict(env_prefix="CI_LOG_SHIPPER_", extra="ignore")

    enabled: bool = True
    namespace: str = DEFAULT_LOG_SHIPPER_NAMESPACE
    release_prefix: str = DEFAULT_LOG_SHIPPER_RELEASE_PREFIX
    chart: str = suite_value("log_shipper", "chart", default="grafana/promtail")
    chart_version: str = suite_value("log_shipper", "version", default="")
    repo_name: str = suite_value("log_shipper", "repo_name", default="grafana")
    repo_url: str = suite_value("log_shipper", "repo_url", default="")
    loki_url: str = suite_value("log_shipper", "loki_url", default="")


class RunContext(BaseSettings):
    """Identity of the current run, read from the CI server's own variables."""

    model_config = SettingsConfigDict(extra="ignore")

    job_name: str = Field(default=DEFAULT_PIPELINE_JOB, validation_alias=AliasChoices("JOB_NAME", "job_name"))
    build_number: int = Field(default=0, validation_alias=AliasChoices("BUILD_NUMBER", "build_number"))
    build_url: str = Field(default="", validation_alias=AliasChoices("BUILD_URL", "build_url"))

    def identity(self) -> RunIdentity:
        return RunIdentity(job_name=self.job_name, build_number=self.build_number, build_url=self.build_url)


# ============================================================================
# Display
# ============================================================================

def display_plan(plan: StagePlan, run: RunIdentity, cfg: PipelineConfig) -> None:
    """Print the resolved stage plan.

    Args:
        plan: Stage plan chosen for this run.
        run: Identity of the current run.
        cfg: Pipeline configuration the plan was resolved against.
    """
    console.print(Panel.fit(f"Stage plan for {run}", style="bold blue"))

    def _flag(value: bool) -> str:
        return "[green]yes[/green]" if value else "[dim]no[/dim]"

    console.print("[yellow]Stages:[/yellow]")
    console.print(f"  lint            : {_flag(plan.run_linter)}")
    console.print(f"  unit            : {_flag(plan.run_unit_tests)}")
    console.print(f"  grpc            : {_flag(plan.run_grpc_tests)}")
    console.print(f"  aux             : {_flag(plan.run_aux_tests)}")
    console.print(f"  e2e             : {_flag(plan.run_e2e)} ({plan.e2e_profile.value})")

    console.print("[yellow]Images:[/yellow]")
    console.print(f"  build           : {_flag(plan.build_images)}")
    console.print(f"  push            : {_flag(plan.push_images)}")
    console.print(f"  tag             : {plan.image_tag}")
    console.print(f"  alias tag       : {plan.alias_tag.value}")
    console.print(f"  ci registry     : {cfg.ci_registry}")

    console.print("[yellow]Reporting:[/yellow]")
    console.print(f"  branch          : {plan.branch}")
    console.print(f"  test plan       : {plan.test_plan_id}")
    console.print(f"  report results  : {_flag(plan.report_test_results)}")
    console.print(f"  continuous      : {_flag(plan.continuous)}")
