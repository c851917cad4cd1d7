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

"""Error taxonomy for the orchestrator.

Planning is a total function and has no error type. Everything else raises a
subclass of :class:`CIError` so stage boundaries can turn failures into
outcomes without catching unrelated exceptions.
"""

from __future__ import annotations


class CIError(RuntimeError):
    """Base class for orchestrator errors."""


class ProvisionError(CIError):
    """The delegated cluster-build job failed or did not finish in time."""


class AccessUnavailable(CIError):
    """The cluster-build job produced no kubeconfig artifact."""


class SidecarError(CIError):
    """Installing or removing the log-shipping sidecar failed."""


class SuiteFailure(CIError):
    """A test suite could not be run to completion."""


class CoredumpDetected(CIError):
    """A coredump was found after a suite, regardless of its exit code."""


class ReportSubmissionError(CIError):
    """Submitting results to the test-management system failed."""


class DestroyError(CIError):
    """The delegated cluster-destroy job failed."""


class ImageError(CIError):
    """Building, tagging or pushing images failed."""
