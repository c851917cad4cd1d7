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

"""Cluster subcommands (provision, inspect, destroy) for handling kept clusters by hand."""

from __future__ import annotations

from pathlib import Path

import typer

from ci_manager import console
from ci_manager.cluster import ClusterLifecycleManager, JenkinsClusterProvider, list_nodes
from ci_manager.config import JenkinsConfig, PipelineConfig, RunContext, SlackConfig
from ci_manager.jenkins import JenkinsClient
from ci_manager.models import ClusterHandle
from ci_manager.notify import SlackNotifier
from ci_manager.utils import Deadline, require_command

app = typer.Typer(help="Manage ephemeral test clusters.")


def _manager(workdir: Path) -> tuple[ClusterLifecycleManager, JenkinsClusterProvider]:
    slack_cfg = SlackConfig()
    provider = JenkinsClusterProvider(JenkinsClient(JenkinsConfig()))
    manager = ClusterLifecycleManager(
        provider=provider,
        notifier=SlackNotifier(slack_cfg),
        channel=slack_cfg.channel,
        workdir=workdir,
    )
    return manager, provider


def _handle(provider: JenkinsClusterProvider, build_id: int, environment: str) -> ClusterHandle:
    return ClusterHandle(
        provider_job_id=build_id,
        environment_kind=environment,
        kubeconfig_location=provider.kubeconfig_location(build_id),
    )


@app.command()
def provision(
    environment: str | None = typer.Option(None, "--environment", help="Provider environment kind"),
    timeout: int = typer.Option(60, "--timeout", help="Minutes to wait for the cluster"),
    workdir: Path = typer.Option(Path("kube"), "--workdir", help="Where to write the kubeconfig"),
) -> None:
    """Build a cluster and download its kubeconfig. The cluster is not destroyed."""
    cfg = PipelineConfig()
    manager, _ = _manager(workdir)
    handle = manager.provision(environment or cfg.environment_kind, RunContext().identity(),
                               Deadline.from_minutes(timeout))
    credentials = manager.fetch_access(handle)
    console.print(f"[green]Cluster {handle.provider_job_id}: KUBECONFIG={credentials.kubeconfig}[/green]")


@app.command()
def inspect(
    build_id: int = typer.Argument(..., help="Numeric id of the cluster-build job"),
    workdir: Path = typer.Option(Path("kube"), "--workdir", help="Where to write the kubeconfig"),
) -> None:
    """Print how to reach and reclaim a kept cluster."""
    require_command("kubectl")
    cfg = PipelineConfig()
    manager, provider = _manager(workdir)
    handle = _handle(provider, build_id, cfg.environment_kind)
    credentials = manager.fetch_access(handle)
    console.print(f"Cluster build job : {provider.build_job_ref(build_id)}")
    console.print(f"Kubeconfig        : {credentials.kubeconfig}")
    console.print(f"Destroy           : {provider.destroy_action_ref(build_id)}")
    console.print(list_nodes(credentials.kubeconfig) or "(node list unavailable)")


@app.command()
def destroy(
    build_id: int = typer.Argument(..., help="Numeric id of the cluster-build job"),
    timeout: int = typer.Option(30, "--timeout", help="Minutes to wait for the destroy job"),
) -> None:
    """Destroy a cluster by its build id."""
    cfg = PipelineConfig()
    manager, provider = _manager(Path("kube"))
    manager.destroy(_handle(provider, build_id, cfg.environment_kind), Deadline.from_minutes(timeout))
