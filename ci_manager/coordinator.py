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

"""Test execution: parallel host suites plus the sequential E2E sub-pipeline."""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import nullcontext
from dataclasses import replace
from functools import partial

import sh
from rich.panel import Panel

from ci_manager import console, logger
from ci_manager.checks import (
    attribute_coredumps,
    container_label,
    coredump_marker,
    find_coredumps,
    remove_leftover_containers,
)
from ci_manager.cluster import ClusterLifecycleManager
from ci_manager.config import PipelineConfig
from ci_manager.constants import (
    COREDUMP_CHECKED_STAGES,
    STAGE_AUX,
    STAGE_E2E,
    STAGE_GRPC,
    STAGE_LINT,
    STAGE_UNIT,
    suite_value,
)
from ci_manager.errors import (
    AccessUnavailable,
    CoredumpDetected,
    ImageError,
    ProvisionError,
    SidecarError,
    SuiteFailure,
)
from ci_manager.images import build_images, push_images
from ci_manager.models import BuildResult, Outcome, RunIdentity, StagePlan
from ci_manager.results import suite_outcome
from ci_manager.runners import TestRunner
from ci_manager.sidecar import LogShipper, installed
from ci_manager.utils import Deadline


def _run_parallel(tasks: dict[str, Callable[[], BuildResult]]) -> dict[str, BuildResult]:
    """Run stage tasks in parallel, printing each task's output as a clean block.

    A task that raises is recorded as a FAILURE; it never cancels its siblings.

    Args:
        tasks: Mapping of stage name to callable.

    Returns:
        Mapping of stage name to its result.
    """
    if not tasks:
        return {}

    outputs: dict[str, str] = {}
    results: dict[str, BuildResult] = {}
    lock = threading.Lock()

    def _run_task(name: str, fn: Callable[[], BuildResult]) -> None:
        with console.buffered() as buf:
            try:
                result = fn()
            except Exception as e:
                logger.exception("Stage %s crashed", name)
                result = BuildResult(stage=name, outcome=Outcome.FAILURE, annotations=(f"{type(e).__name__}: {e}",))
        with lock:
            outputs[name] = buf.getvalue()
            results[name] = result

    with ThreadPoolExecutor(max_workers=len(tasks)) as executor:
        futures = {executor.submit(_run_task, name, fn): name for name, fn in tasks.items()}
        for future in as_completed(futures):
            future.result()

    for name in tasks:
        if outputs.get(name):
            console.print(Panel.fit(f"{name} output", style="bold blue"))
            console.print(outputs[name], end="", markup=False, highlight=False)
    return results


def e2e_tests(plan: StagePlan) -> list[str]:
    return list(suite_value("e2e_profiles", plan.e2e_profile.value, default=[]))


class TestCoordinator:
    """Runs the suites a plan enables and returns one result per stage.

    Args:
        cfg: Pipeline configuration.
        runner: Suite runner.
        clusters: Lifecycle manager for the E2E cluster.
        shipper: Log-shipping sidecar, or None to run without one.
        run: Identity of the current run.
    """

    __test__ = False

    def __init__(
        self,
        cfg: PipelineConfig,
        runner: TestRunner,
        clusters: ClusterLifecycleManager,
        shipper: LogShipper | None,
        run: RunIdentity,
    ) -> None:
        self.cfg = cfg
        self.runner = runner
        self.clusters = clusters
        self.shipper = shipper
        self.identity = run

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self, plan: StagePlan, deadline: Deadline) -> dict[str, BuildResult]:
        """Run every stage the plan enables.

        The linter runs first. Unit, gRPC and aux suites then run concurrently
        with the E2E sub-pipeline, and all results are joined before returning.
        Coredumps recorded while the host suites ran are checked once after the
        join and fail only the stages that own the crashed executables.

        Args:
            plan: Stage plan for this run.
            deadline: Wall-clock bound of the whole run.

        Returns:
            Mapping of stage name to result; disabled stages are SKIPPED.
        """
        results: dict[str, BuildResult] = {}
        values = self._common_values(plan)

        if plan.run_linter:
            console.print(Panel.fit("Lint", style="bold blue"))
            results[STAGE_LINT] = self._run_suite(STAGE_LINT, values, deadline)

        enabled = {
            STAGE_UNIT: plan.run_unit_tests,
            STAGE_GRPC: plan.run_grpc_tests,
            STAGE_AUX: plan.run_aux_tests,
        }
        tasks: dict[str, Callable[[], BuildResult]] = {}
        for stage, wanted in enabled.items():
            if not wanted:
                continue
            suite = self._run_host_suite if stage in COREDUMP_CHECKED_STAGES else self._run_suite
            tasks[stage] = partial(suite, stage, values, deadline)
        if plan.run_e2e:
            tasks[STAGE_E2E] = lambda: self.run_e2e(plan, deadline)

        since = coredump_marker()
        results.update(_run_parallel(tasks))
        checked = [stage for stage in COREDUMP_CHECKED_STAGES if stage in tasks]
        if checked:
            self._check_coredumps(results, checked, since)

        for stage in (STAGE_LINT, STAGE_UNIT, STAGE_GRPC, STAGE_AUX, STAGE_E2E):
            results.setdefault(stage, BuildResult(stage=stage, outcome=Outcome.SKIPPED))
        return results

    # ------------------------------------------------------------------
    # Suites
    # ------------------------------------------------------------------

    def _common_values(self, plan: StagePlan) -> dict[str, str]:
        registry = self.cfg.ci_registry if plan.build_images else self.cfg.public_registry
        return {
            "tag": plan.image_tag,
            "registry": registry,
            "profile": plan.e2e_profile.value,
            "tests": ",".join(e2e_tests(plan)),
            "build_number": str(self.identity.build_number),
            "kubeconfig": "",
            "container_label": "",
        }

    def _run_suite(self, stage: str, values: dict[str, str], deadline: Deadline) -> BuildResult:
        try:
            suite_run = self.runner.run(stage, values, deadline)
        except sh.TimeoutException:
            return BuildResult(stage=stage, outcome=Outcome.ABORTED, annotations=("run deadline reached",))
        except SuiteFailure as e:
            return BuildResult(stage=stage, outcome=Outcome.FAILURE, annotations=(str(e),))

        outcome = suite_outcome(suite_run.exit_code, suite_run.result_files)
        annotations = () if suite_run.exit_code == 0 else (f"exit code {suite_run.exit_code}",)
        return BuildResult(stage=stage, outcome=outcome, annotations=annotations,
                           result_files=suite_run.result_files)

    def _run_host_suite(self, stage: str, values: dict[str, str], deadline: Deadline) -> BuildResult:
        """Run a suite on this host, then remove the containers it left behind.

        Containers are matched by a label scoped to this run and stage, so a
        sibling suite that is still running keeps its own.
        """
        label = container_label(self.identity.build_number, stage)
        try:
            result = self._run_suite(stage, {**values, "container_label": label}, deadline)
        finally:
            leftovers = remove_leftover_containers(label)

        if not leftovers:
            return result
        return replace(result, annotations=result.annotations + (
            f"removed leftover containers: {', '.join(leftovers)}",
        ))

    def _check_coredumps(self, results: dict[str, BuildResult], stages: Sequence[str], since: str) -> None:
        """Check for coredumps once all host suites have joined.

        Each coredump fails only the stages whose executables crashed, even
        when the runner reported success.
        """
        coredumps = find_coredumps(since)
        if coredumps is None:
            for stage in stages:
                results[stage] = replace(results[stage], annotations=results[stage].annotations + (
                    "coredump check unavailable",
                ))
            return

        owners = {stage: suite_value("suites", stage, "coredump_executables", default=[]) for stage in stages}
        for stage, lines in attribute_coredumps(coredumps, owners).items():
            if not lines:
                continue
            err = CoredumpDetected(f"{stage}: {len(lines)} coredump(s) since {since}")
            logger.error("%s", err)
            result = results[stage]
            results[stage] = replace(
                result,
                outcome=Outcome.worst([result.outcome, Outcome.FAILURE]),
                annotations=result.annotations + (str(err),) + tuple(f"coredump: {line}" for line in lines),
            )

    # ------------------------------------------------------------------
    # E2E sub-pipeline
    # ------------------------------------------------------------------

    def run_e2e(self, plan: StagePlan, deadline: Deadline) -> BuildResult:
        """Build images, lease a cluster, and run the E2E suite on it.

        Sub-stages run in order and the first failure aborts the rest. The
        cluster is destroyed only when every step after provisioning passed;
        otherwise it is preserved and reported.

        Args:
            plan: Stage plan for this run.
            deadline: Wall-clock bound of the whole run.

        Returns:
            Result of the E2E stage.
        """
        console.print(Panel.fit(f"E2E ({plan.e2e_profile.value})", style="bold blue"))
        if plan.build_images:
            try:
                build_images(self.cfg, plan, deadline)
                push_images(self.cfg, self.cfg.ci_registry, plan.image_tag, [plan.image_tag])
            except ImageError as e:
                return BuildResult(stage=STAGE_E2E, outcome=Outcome.FAILURE, annotations=(str(e),))

        values = self._common_values(plan)
        try:
            with self.clusters.session(self.cfg.environment_kind, self.identity, deadline) as lease:
                values["kubeconfig"] = str(lease.credentials.kubeconfig)
                sidecar = (
                    installed(self.shipper, lease.credentials, self.identity.build_number, plan.image_tag, deadline)
                    if self.shipper is not None else nullcontext()
                )
                with sidecar:
                    result = self._run_suite(STAGE_E2E, values, deadline)
                if result.outcome is not Outcome.SUCCESS:
                    lease.mark_failed(f"e2e suite finished with {result.outcome.value}")
        except (ProvisionError, AccessUnavailable, SidecarError) as e:
            return BuildResult(stage=STAGE_E2E, outcome=Outcome.FAILURE, annotations=(str(e),))
        return result
