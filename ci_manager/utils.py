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

"""Utility helpers: run deadline, command templates, and command checks."""

from __future__ import annotations

import signal
import time
from dataclasses import dataclass, field

import sh


@dataclass
class Deadline:
    """Single wall-clock bound on a whole run.

    Attributes:
        seconds: Total budget in seconds.
        started: Monotonic start time.
    """

    seconds: float
    started: float = field(default_factory=time.monotonic)

    @classmethod
    def from_minutes(cls, minutes: int) -> Deadline:
        return cls(seconds=minutes * 60)

    def remaining(self) -> float:
        """Seconds left before the deadline, never negative."""
        return max(0.0, self.seconds - (time.monotonic() - self.started))

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    def timeout_for(self, command: str) -> float:
        """Seconds a command may run, for sh's ``_timeout``.

        sh treats a zero timeout as no timeout, so an expired deadline is
        reported here instead of being handed to the command.

        Raises:
            sh.TimeoutException: If the deadline has already passed.
        """
        remaining = self.remaining()
        if remaining <= 0:
            raise sh.TimeoutException(-signal.SIGKILL, command)
        return remaining


def render_command(template: list[str], values: dict[str, str]) -> list[str]:
    """Fill ``{placeholder}`` fields of a command template.

    Args:
        template: Command and arguments, possibly containing placeholders.
        values: Placeholder values.

    Returns:
        The command with every placeholder substituted.
    """
    return [part.format(**values) for part in template]


def render_env(template: dict[str, str] | None, values: dict[str, str]) -> dict[str, str]:
    return {key: value.format(**values) for key, value in (template or {}).items()}


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        RuntimeError: If the command is not found.
    """
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Required command '{cmd}' not found. Please install it first.") from err
