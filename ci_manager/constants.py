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

"""Constants, suite definitions loading, and suite_value helper."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

# -- Resolved paths --
PACKAGE_DIR = Path(__file__).resolve().parent


def load_suites() -> dict:
    """Load suite command templates and sidecar defaults from suites.yaml.

    Returns:
        Parsed YAML content as a nested dictionary.
    """
    suites_file = PACKAGE_DIR / "suites.yaml"
    with open(suites_file) as f:
        return yaml.safe_load(f)


SUITES = load_suites()


def suite_value(*keys: str, default: Any = None) -> Any:
    """Safely traverse the SUITES dict by key path.

    Args:
        *keys: Sequence of dictionary keys to traverse.
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.
    """
    node = SUITES
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


# -- Stage names --
STAGE_LINT = "lint"
STAGE_UNIT = "unit"
STAGE_GRPC = "grpc"
STAGE_AUX = "aux"
STAGE_E2E = "e2e"
STAGE_PUBLISH = "publish"

# Stages followed by the always-run coredump check
COREDUMP_CHECKED_STAGES = (STAGE_UNIT, STAGE_GRPC)

# -- Planning defaults --
DEFAULT_PROTECTED_BRANCHES = ["develop", "master", "main", "release/*", "staging"]
DEFAULT_MERGE_GATE_BRANCHES = ["staging", "trying"]
DEFAULT_DRY_RUN_BRANCHES = ["trying"]
DEFAULT_NOTIFY_BRANCHES = ["develop", "master", "main"]
DEFAULT_CONTINUOUS_TAG = "develop"
DEFAULT_NIGHTLY_TAG = "nightly"
DEFAULT_SHORT_REVISION_LENGTH = 7
DEFAULT_ENVIRONMENT_KIND = "hcloud-kubeadm"
DEFAULT_TIMEOUT_MINUTES = 360

# -- Test plans --
DEFAULT_ONDEMAND_TEST_PLAN = "MQ-1"
DEFAULT_NIGHTLY_TEST_PLAN = "MQ-17"
DEFAULT_CONTINUOUS_TEST_PLAN = "MQ-33"
DEFAULT_TEST_PROJECT_KEY = "MQ"

# -- Images --
DEFAULT_CI_REGISTRY = "ci-registry.mayastor-ci.mayadata.io"
DEFAULT_PUBLIC_REGISTRY = "docker.io"
DEFAULT_IMAGE_NAMESPACE = "mayadata"
DEFAULT_IMAGES = ["mayastor", "mayastor-csi", "moac"]
DEFAULT_BUILD_COMMAND = "./scripts/release.sh"

# -- Jenkins --
DEFAULT_JENKINS_URL = "https://mayastor-ci.mayadata.io"
DEFAULT_BUILD_CLUSTER_JOB = "k8s-build-cluster"
DEFAULT_DESTROY_CLUSTER_JOB = "k8s-destroy-cluster"
DEFAULT_PIPELINE_JOB = "mayastor"
DEFAULT_HISTORY_DEPTH = 50
# Build parameters a self-invoked continuous run is queued with; the CLI reads
# them back from the environment Jenkins exports them to.
CONTINUOUS_PARAM = "e2e_continuous"
TRIGGER_PARAM = "e2e_trigger"
KUBECONFIG_ARTIFACT = "hcloud-kubeadm/modules/k8s/secrets/admin.conf"
JOB_POLL_INTERVAL_SECONDS = 30
QUEUE_POLL_INTERVAL_SECONDS = 5
HTTP_MAX_RETRIES = 3
HTTP_RETRY_WAIT_SECONDS = 5
HTTP_TIMEOUT_SECONDS = 30

# -- Chat --
DEFAULT_SLACK_CHANNEL = "#mayastor-backend"
DEFAULT_CONTINUOUS_SLACK_CHANNEL = "#mayastor-e2e"
SEVERITY_GOOD = "good"
SEVERITY_WARNING = "warning"
SEVERITY_DANGER = "danger"

# -- Log shipper --
DEFAULT_LOG_SHIPPER_NAMESPACE = "mayastor-logging"
DEFAULT_LOG_SHIPPER_RELEASE_PREFIX = "promtail"

# -- Residual resource check --
TEST_CONTAINER_LABEL = "io.mayastor.test"
