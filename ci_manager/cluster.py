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

"""Ephemeral cluster lifecycle: provision, access, destroy, or preserve on failure.

A cluster that hosted a failing run is never destroyed by the pipeline. It is
handed over to a human instead, with a single notification carrying the node
list, the cluster-build job and the destroy action for the same build id.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import requests
import sh
from rich.panel import Panel

from ci_manager import console, logger
from ci_manager.constants import KUBECONFIG_ARTIFACT, SEVERITY_DANGER
from ci_manager.errors import AccessUnavailable, DestroyError, ProvisionError
from ci_manager.jenkins import JenkinsClient, JobTimeout
from ci_manager.models import (
    ClusterHandle,
    DiagnosticSnapshot,
    KubeCredentials,
    Outcome,
    RunIdentity,
)
from ci_manager.notify import SlackNotifier
from ci_manager.utils import Deadline


# ============================================================================
# Provider interface
# ============================================================================

class ClusterProvider(Protocol):
    """External service that builds and destroys clusters by numeric build id."""

    def build(self, environment_kind: str, run: RunIdentity, deadline: Deadline) -> int: ...

    def kubeconfig(self, build_id: int) -> bytes | None: ...

    def destroy(self, build_id: int, deadline: Deadline) -> None: ...

    def build_job_ref(self, build_id: int) -> str: ...

    def destroy_action_ref(self, build_id: int) -> str: ...

    def kubeconfig_location(self, build_id: int) -> str: ...


class JenkinsClusterProvider:
    """Cluster provider backed by the ``k8s-build-cluster``/``k8s-destroy-cluster`` jobs."""

    def __init__(self, client: JenkinsClient) -> None:
        self.client = client
        self.build_job = client.cfg.build_cluster_job
        self.destroy_job = client.cfg.destroy_cluster_job

    def build(self, environment_kind: str, run: RunIdentity, deadline: Deadline) -> int:
        params = {"ENVIRONMENT": environment_kind, "REQUESTED_BY": str(run)}
        try:
            number, outcome = self.client.run_job(self.build_job, params, deadline)
        except (JobTimeout, requests.RequestException, RuntimeError) as err:
            raise ProvisionError(f"{self.build_job} did not complete: {err}") from err
        if outcome is not Outcome.SUCCESS:
            raise ProvisionError(f"{self.build_job}#{number} finished with {outcome.value}")
        return number

    def kubeconfig(self, build_id: int) -> bytes | None:
        return self.client.artifact(self.build_job, build_id, KUBECONFIG_ARTIFACT)

    def destroy(self, build_id: int, deadline: Deadline) -> None:
        try:
            number, outcome = self.client.run_job(self.destroy_job, {"BUILD_ID": str(build_id)}, deadline)
        except (JobTimeout, requests.RequestException, RuntimeError) as err:
            raise DestroyError(f"{self.destroy_job} for cluster {build_id} did not complete: {err}") from err
        if outcome is not Outcome.SUCCESS:
            raise DestroyError(f"{self.destroy_job}#{number} finished with {outcome.value}")

    def build_job_ref(self, build_id: int) -> str:
        return self.client.build_url(self.build_job, build_id)

    def destroy_action_ref(self, build_id: int) -> str:
        return f"{self.client.job_url(self.destroy_job)}/parambuild?BUILD_ID={build_id}"

    def kubeconfig_location(self, build_id: int) -> str:
        return f"{self.client.build_url(self.build_job, build_id)}/artifact/{KUBECONFIG_ARTIFACT}"


# ============================================================================
# Node inventory
# ============================================================================

def list_nodes(kubeconfig: Path | None) -> str:
    """Return ``kubectl get nodes -o wide`` output, or a note when unavailable."""
    if kubeconfig is None:
        return ""
    try:
        return str(sh.kubectl("--kubeconfig", str(kubeconfig), "get", "nodes", "-o", "wide",
                              _timeout=60)).strip()
    except (sh.ErrorReturnCode, sh.CommandNotFound, sh.TimeoutException) as e:
        logger.warning("Could not list cluster nodes: %s", e)
        return ""


# ============================================================================
# Lifecycle manager
# ============================================================================

@dataclass
class ClusterLease:
    """A provisioned cluster owned by the current run.

    Attributes:
        handle: The cluster being leased.
        credentials: Kubeconfig, once fetched.
        failure: Reason the cluster must be preserved, or None.
    """

    handle: ClusterHandle
    credentials: KubeCredentials | None = None
    failure: str | None = None

    def mark_failed(self, reason: str) -> None:
        if self.failure is None:
            self.failure = reason


class ClusterLifecycleManager:
    """Provisions, hands out and reclaims ephemeral E2E clusters.

    Args:
        provider: External cluster provider.
        notifier: Chat notifier for the preserve-on-failure report.
        channel: Channel the preserve report is posted to.
        workdir: Directory kubeconfig files are written to.
    """

    def __init__(
        self,
        provider: ClusterProvider,
        notifier: SlackNotifier,
        channel: str,
        workdir: Path,
    ) -> None:
        self.provider = provider
        self.notifier = notifier
        self.channel = channel
        self.workdir = workdir

    def provision(self, environment_kind: str, run: RunIdentity, deadline: Deadline) -> ClusterHandle:
        """Build a cluster and block until the provider job completes.

        Raises:
            ProvisionError: If the build job fails or outlives the deadline.
        """
        console.print(Panel.fit(f"Provisioning {environment_kind} cluster", style="bold blue"))
        build_id = self.provider.build(environment_kind, run, deadline)
        handle = ClusterHandle(
            provider_job_id=build_id,
            environment_kind=environment_kind,
            kubeconfig_location=self.provider.kubeconfig_location(build_id),
        )
        console.print(f"[green]✅ Cluster {build_id} ready[/green]")
        return handle

    def fetch_access(self, handle: ClusterHandle) -> KubeCredentials:
        """Download the cluster's kubeconfig.

        Raises:
            AccessUnavailable: If the provider did not publish a kubeconfig.
        """
        try:
            content = self.provider.kubeconfig(handle.provider_job_id)
        except requests.RequestException as err:
            raise AccessUnavailable(f"Could not fetch kubeconfig of cluster {handle.provider_job_id}") from err
        if not content:
            raise AccessUnavailable(f"Cluster {handle.provider_job_id} produced no kubeconfig")

        self.workdir.mkdir(parents=True, exist_ok=True)
        path = self.workdir / f"kubeconfig-{handle.provider_job_id}"
        path.write_bytes(content)
        path.chmod(0o600)
        return KubeCredentials(kubeconfig=path)

    def destroy(self, handle: ClusterHandle, deadline: Deadline) -> None:
        """Destroy a cluster whose run passed. Failures are logged, not raised."""
        console.print(f"[yellow]ℹ️  Destroying cluster {handle.provider_job_id}...[/yellow]")
        try:
            self.provider.destroy(handle.provider_job_id, deadline)
        except DestroyError as e:
            logger.warning("Cluster %s may have leaked: %s", handle.provider_job_id, e)
            console.print(f"[yellow]⚠️  {e}[/yellow]")
            return
        console.print(f"[green]✅ Cluster {handle.provider_job_id} destroyed[/green]")

    def preserve(
        self,
        handle: ClusterHandle,
        run: RunIdentity,
        reason: str,
        credentials: KubeCredentials | None = None,
    ) -> DiagnosticSnapshot:
        """Hand the cluster over to a human and report how to find and reclaim it."""
        build_id = handle.provider_job_id
        snapshot = DiagnosticSnapshot(
            cluster_build_id=build_id,
            build_job_ref=self.provider.build_job_ref(build_id),
            destroy_action_ref=self.provider.destroy_action_ref(build_id),
            run=run,
            nodes=list_nodes(credentials.kubeconfig if credentials else None),
            kubeconfig_location=handle.kubeconfig_location,
            reason=reason,
        )
        console.print(f"[red]❌ Keeping cluster {build_id} for debugging: {reason}[/red]")
        self.notifier.notify(self.channel, SEVERITY_DANGER, snapshot.render())
        return snapshot

    @contextmanager
    def session(self, environment_kind: str, run: RunIdentity, deadline: Deadline) -> Iterator[ClusterLease]:
        """Lease a cluster for the duration of the block.

        The cluster is destroyed when the block exits cleanly and nothing
        marked the lease failed. Otherwise it is preserved and reported.

        Raises:
            ProvisionError: If the cluster cannot be built.
        """
        handle = self.provision(environment_kind, run, deadline)
        lease = ClusterLease(handle=handle)
        try:
            lease.credentials = self.fetch_access(handle)
            yield lease
        except BaseException as e:
            lease.mark_failed(f"{type(e).__name__}: {e}")
            self.preserve(handle, run, lease.failure, lease.credentials)
            raise
        if lease.failure is not None:
            self.preserve(handle, run, lease.failure, lease.credentials)
        else:
            self.destroy(handle, deadline)
