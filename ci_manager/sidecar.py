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

"""Log-shipping sidecar installed into the E2E cluster for the duration of a suite."""

from __future__ import annotations

import re
from collections.abc import Iterator
from contextlib import contextmanager

import sh
from rich.panel import Panel

from ci_manager import console, logger
from ci_manager.config import LogShipperConfig
from ci_manager.errors import SidecarError
from ci_manager.models import KubeCredentials
from ci_manager.utils import Deadline


def release_name(prefix: str, run_id: int) -> str:
    """Helm release name for a run, e.g. ``promtail-1234``."""
    return re.sub(r"[^a-z0-9-]", "-", f"{prefix}-{run_id}".lower())


class LogShipper:
    """Installs and removes the log-shipping agent with Helm.

    Both operations are keyed by ``(run_id, version_tag)`` and are idempotent:
    install upgrades an existing release and uninstall tolerates a missing one.
    """

    def __init__(self, cfg: LogShipperConfig) -> None:
        self.cfg = cfg

    def install(self, credentials: KubeCredentials, run_id: int, version_tag: str, deadline: Deadline) -> None:
        """Install or upgrade the sidecar release for this run.

        Raises:
            SidecarError: If Helm fails.
        """
        release = release_name(self.cfg.release_prefix, run_id)
        console.print(Panel.fit(f"Installing log shipper ({release}, tag {version_tag})", style="bold blue"))
        kube = ("--kubeconfig", str(credentials.kubeconfig))
        try:
            timeout = deadline.timeout_for(f"helm upgrade --install {release}")
            if self.cfg.repo_url:
                sh.helm("repo", "add", self.cfg.repo_name, self.cfg.repo_url, "--force-update")
            helm_args = [
                "upgrade", "--install", release, self.cfg.chart,
                *kube,
                "--namespace", self.cfg.namespace,
                "--create-namespace",
                "--set", f"config.clients[0].url={self.cfg.loki_url}",
                "--set", f"config.clients[0].externalLabels.run={run_id}",
                "--set", f"config.clients[0].externalLabels.version={version_tag}",
                "--wait",
            ]
            if self.cfg.chart_version:
                helm_args += ["--version", self.cfg.chart_version]
            sh.helm(*helm_args, _timeout=timeout)
        except (sh.ErrorReturnCode, sh.CommandNotFound, sh.TimeoutException) as err:
            raise SidecarError(f"Failed to install {release}: {err}") from err
        console.print(f"[green]✅ Log shipper {release} installed[/green]")

    def uninstall(self, credentials: KubeCredentials, run_id: int, version_tag: str) -> None:
        """Remove the sidecar release for this run.

        Raises:
            SidecarError: If Helm fails for any reason other than a missing release.
        """
        release = release_name(self.cfg.release_prefix, run_id)
        console.print(f"[yellow]ℹ️  Removing log shipper {release} (tag {version_tag})...[/yellow]")
        try:
            sh.helm("uninstall", release,
                    "--kubeconfig", str(credentials.kubeconfig),
                    "--namespace", self.cfg.namespace,
                    "--wait")
        except sh.ErrorReturnCode as e:
            stderr = e.stderr.decode(errors="replace") if isinstance(e.stderr, bytes) else str(e.stderr)
            if "not found" in stderr:
                console.print(f"[yellow]   No release {release} found[/yellow]")
                return
            raise SidecarError(f"Failed to uninstall {release}: {stderr.strip()}") from e
        except sh.CommandNotFound as err:
            raise SidecarError(f"Failed to uninstall {release}: {err}") from err
        console.print(f"[green]✅ Log shipper {release} removed[/green]")


@contextmanager
def installed(
    shipper: LogShipper,
    credentials: KubeCredentials,
    run_id: int,
    version_tag: str,
    deadline: Deadline,
) -> Iterator[None]:
    """Keep the sidecar installed for the duration of the block.

    Install failure propagates before the block runs. Once installed, the
    sidecar is removed exactly once on every exit path. A removal failure is
    raised when the block itself succeeded and logged when it did not.

    Raises:
        SidecarError: If install fails, or removal fails after a clean block.
    """
    shipper.install(credentials, run_id, version_tag, deadline)
    try:
        yield
    except BaseException:
        try:
            shipper.uninstall(credentials, run_id, version_tag)
        except SidecarError as e:
            logger.warning("%s", e)
        raise
    shipper.uninstall(credentials, run_id, version_tag)
