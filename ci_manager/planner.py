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

"""Trigger classification and stage planning.

Everything here is a pure function of its arguments: the same trigger and
configuration always yield an identical :class:`StagePlan`.
"""

from __future__ import annotations

from fnmatch import fnmatchcase

from ci_manager.config import PipelineConfig
from ci_manager.models import AliasTag, E2EProfile, StagePlan, Trigger, TriggerKind


def _matches(branch: str, patterns: list[str]) -> bool:
    return any(fnmatchcase(branch, pattern) for pattern in patterns)


def is_protected_branch(branch: str, cfg: PipelineConfig) -> bool:
    return _matches(branch, cfg.protected_branches)


def is_merge_gate_branch(branch: str, cfg: PipelineConfig) -> bool:
    """Whether ``branch`` is a merge-gate branch that runs the short E2E profile."""
    return _matches(branch, cfg.merge_gate_branches)


def is_dry_run_branch(branch: str, cfg: PipelineConfig) -> bool:
    """Whether ``branch`` is a merge-gate dry run whose results are throwaway."""
    return _matches(branch, cfg.dry_run_branches)


def should_run(trigger: Trigger) -> bool:
    """Branch indexing is housekeeping: such runs build nothing and report nothing."""
    return trigger.kind is not TriggerKind.BRANCH_INDEXING


def short_revision(revision: str, length: int) -> str:
    return revision[:length]


def plan(trigger: Trigger, cfg: PipelineConfig) -> StagePlan:
    """Resolve the stage plan for a trigger.

    Args:
        trigger: Why the run started, including branch and continuous flag.
        cfg: Pipeline configuration (branch patterns, tags, test plans).

    Returns:
        The immutable stage plan for this run.
    """
    branch = trigger.branch
    timer = trigger.kind is TriggerKind.TIMER
    alias_tag = AliasTag.NIGHTLY if timer else AliasTag.CI
    dry_run = is_dry_run_branch(branch, cfg)

    if trigger.is_continuous:
        return StagePlan(
            run_linter=False,
            run_unit_tests=False,
            run_grpc_tests=False,
            run_aux_tests=False,
            run_e2e=True,
            e2e_profile=E2EProfile.CONTINUOUS,
            build_images=False,
            push_images=False,
            image_tag=cfg.continuous_tag,
            test_plan_id=cfg.continuous_test_plan,
            alias_tag=alias_tag,
            branch=branch,
            continuous=True,
            report_test_results=not dry_run,
        )

    if timer:
        image_tag = cfg.nightly_tag
        test_plan_id = cfg.nightly_test_plan
    else:
        image_tag = short_revision(trigger.revision, cfg.short_revision_length)
        test_plan_id = cfg.ondemand_test_plan

    profile = E2EProfile.ONDEMAND if is_merge_gate_branch(branch, cfg) else E2EProfile.EXTENDED

    return StagePlan(
        run_linter=True,
        run_unit_tests=True,
        run_grpc_tests=True,
        run_aux_tests=True,
        run_e2e=True,
        e2e_profile=profile,
        build_images=True,
        push_images=is_protected_branch(branch, cfg) and not dry_run,
        image_tag=image_tag,
        test_plan_id=test_plan_id,
        alias_tag=alias_tag,
        branch=branch,
        continuous=False,
        report_test_results=not dry_run,
    )
