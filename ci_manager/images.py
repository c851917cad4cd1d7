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

"""Image build, push to the CI registry, and publication."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed

import docker
import sh
from rich.panel import Panel

from ci_manager import console
from ci_manager.config import PipelineConfig
from ci_manager.errors import ImageError
from ci_manager.models import StagePlan
from ci_manager.utils import Deadline

PUSH_MAX_WORKERS = 4


def local_image(cfg: PipelineConfig, name: str, tag: str) -> str:
    return f"{cfg.image_namespace}/{name}:{tag}"


def build_images(cfg: PipelineConfig, plan: StagePlan, deadline: Deadline) -> None:
    """Build every image locally under ``plan.image_tag``.

    Raises:
        ImageError: If the build command fails.
    """
    console.print(Panel.fit(f"Building images ({plan.image_tag})", style="bold blue"))
    try:
        sh.Command(cfg.build_command)(
            "--skip-publish",
            "--tag", plan.image_tag,
            "--alias-tag", plan.alias_tag.value,
            _timeout=deadline.timeout_for(cfg.build_command),
        )
    except (sh.ErrorReturnCode, sh.CommandNotFound, sh.TimeoutException) as err:
        raise ImageError(f"Image build failed: {err}") from err
    console.print("[green]✅ Images built[/green]")


def _tag_and_push(
    docker_client: docker.DockerClient,
    source: str,
    repository: str,
    tags: list[str],
) -> tuple[str, bool, str | None]:
    """Tag one local image as ``repository:tag`` for each tag and push it."""
    try:
        image = docker_client.images.get(source)
        for tag in tags:
            image.tag(repository, tag=tag)
            for line in docker_client.images.push(repository, tag=tag, stream=True, decode=True):
                if "error" in line:
                    return (source, False, line["error"])
        return (source, True, None)
    except docker.errors.ImageNotFound:
        return (source, False, "Image not found")
    except docker.errors.APIError as e:
        return (source, False, f"Docker API error: {e}")


def push_images(cfg: PipelineConfig, registry: str, source_tag: str, tags: list[str]) -> None:
    """Push every configured image to ``registry`` under each of ``tags``.

    Raises:
        ImageError: If Docker is unreachable or any push fails.
    """
    try:
        docker_client = docker.from_env()
    except docker.errors.DockerException as err:
        raise ImageError(f"Failed to connect to Docker: {err}") from err

    failed: list[str] = []
    try:
        with ThreadPoolExecutor(max_workers=PUSH_MAX_WORKERS) as executor:
            futures = [
                executor.submit(
                    _tag_and_push,
                    docker_client,
                    local_image(cfg, name, source_tag),
                    f"{registry}/{cfg.image_namespace}/{name}",
                    tags,
                )
                for name in cfg.images
            ]
            for future in as_completed(futures):
                source, ok, error = future.result()
                if ok:
                    console.print(f"[green]✓ {source} → {registry} ({', '.join(tags)})[/green]")
                else:
                    console.print(f"[red]✗ {source} - {error}[/red]")
                    failed.append(source)
    finally:
        docker_client.close()

    if failed:
        raise ImageError(f"Failed to push {len(failed)} images to {registry}: {', '.join(sorted(failed))}")


def publish_images(cfg: PipelineConfig, plan: StagePlan) -> None:
    """Publish tested images under their tag and the floating alias tag."""
    console.print(Panel.fit(f"Publishing images to {cfg.public_registry}", style="bold blue"))
    push_images(cfg, cfg.public_registry, plan.image_tag, [plan.image_tag, plan.alias_tag.value])
    console.print(f"[green]✅ Published {plan.image_tag} and {plan.alias_tag.value}[/green]")
