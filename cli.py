#!/usr/bin/env python3
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

"""
cli.py - Ephemeral-cluster test orchestration for the Mayastor CI pipeline.

Subcommands:
    pipeline   Plan and run the test pipeline (run, plan, history)
    cluster    Manage ephemeral test clusters (provision, inspect, destroy)

Environment Variables:
    Configuration is read from CI_* variables (see ci_manager/config.py),
    plus the CI server's own BUILD_NUMBER, JOB_NAME, BUILD_URL, BRANCH_NAME
    and GIT_COMMIT.

Examples:
    # Run for the checked-out branch, triggered by hand
    ./cli.py pipeline run

    # Nightly run of develop
    ./cli.py pipeline run --trigger timer --branch develop

    # Continuous mode, re-arming itself after each success
    ./cli.py pipeline run --continuous --continuous-enabled --branch develop

    # Show what a merge-gate run would do
    ./cli.py pipeline plan --trigger branch-event --branch staging

    # Reclaim a cluster kept after a failed run
    ./cli.py cluster destroy 1234

For detailed usage information, run: ./cli.py --help
"""

from __future__ import annotations

import logging
import sys

import typer

from ci_manager import console
from ci_manager.commands import cluster_cmd, pipeline_cmd

app = typer.Typer(
    help="Ephemeral-cluster test orchestration for the Mayastor CI pipeline.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.add_typer(pipeline_cmd.app, name="pipeline")
app.add_typer(cluster_cmd.app, name="cluster")


def main() -> None:
    try:
        app()
    except Exception as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
