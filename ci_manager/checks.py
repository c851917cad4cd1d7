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

"""Always-run verification after host-side suites: coredumps and leftover containers."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from fnmatch import fnmatchcase

import docker
import sh

from ci_manager import console, logger
from ci_manager.constants import TEST_CONTAINER_LABEL


def coredump_marker() -> str:
    """Timestamp taken before the suites start, passed as ``--since`` afterwards."""
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def find_coredumps(since: str) -> list[str] | None:
    """List coredumps recorded since ``since``.

    Args:
        since: Timestamp from :func:`coredump_marker`.

    Returns:
        One line per coredump, or None if coredumps cannot be inspected.
    """
    try:
        # coredumpctl exits 1 when there is nothing to list
        output = sh.coredumpctl("list", "--no-pager", "--no-legend", "--since", since, _ok_code=[0, 1])
    except (sh.ErrorReturnCode, sh.CommandNotFound) as e:
        logger.warning("Coredump check unavailable: %s", e)
        return None
    return [line for line in str(output).splitlines() if line.strip()]


def coredump_executable(line: str) -> str:
    """Crashed executable of a ``coredumpctl list`` line, or "" if it has none."""
    paths = [token for token in line.split() if token.startswith("/")]
    return paths[-1] if paths else ""


def attribute_coredumps(
    coredumps: Iterable[str],
    owners: Mapping[str, Sequence[str]],
) -> dict[str, list[str]]:
    """Assign coredumps to the stages whose executables crashed.

    Args:
        coredumps: Lines from :func:`find_coredumps`.
        owners: Stage name to glob patterns of the executables it runs.

    Returns:
        Stage name to the coredumps it owns. A coredump no pattern claims
        is assigned to every stage.
    """
    assigned: dict[str, list[str]] = {stage: [] for stage in owners}
    for line in coredumps:
        exe = coredump_executable(line)
        matched = [
            stage for stage, patterns in owners.items()
            if exe and any(fnmatchcase(exe, p) for p in patterns)
        ]
        for stage in matched or list(owners):
            assigned[stage].append(line)
    return assigned


def container_label(run_id: int, stage: str) -> str:
    """Docker label filter (``key=value``) for the containers of one stage of one run."""
    return f"{TEST_CONTAINER_LABEL}={run_id}-{stage}"


def remove_leftover_containers(label: str) -> list[str]:
    """Remove containers left behind by a suite.

    Args:
        label: Label filter from :func:`container_label`, so that only the
            finished stage's containers are touched.

    Returns:
        Names of the containers that were removed.
    """
    try:
        client = docker.from_env()
    except docker.errors.DockerException as e:
        logger.warning("Residual container check unavailable: %s", e)
        return []

    removed = []
    try:
        for container in client.containers.list(all=True, filters={"label": label}):
            try:
                container.remove(force=True)
                removed.append(container.name)
            except docker.errors.APIError as e:
                logger.warning("Failed to remove %s: %s", container.name, e)
    finally:
        client.close()

    if removed:
        console.print(f"[yellow]⚠️  Removed {len(removed)} leftover test containers[/yellow]")
    return removed
