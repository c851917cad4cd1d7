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

"""Jenkins REST client used for cluster jobs, build history and re-arming."""

from __future__ import annotations

from urllib.parse import quote

import requests
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    wait_fixed,
)

from ci_manager import logger
from ci_manager.config import JenkinsConfig
from ci_manager.constants import (
    HTTP_MAX_RETRIES,
    HTTP_RETRY_WAIT_SECONDS,
    HTTP_TIMEOUT_SECONDS,
    QUEUE_POLL_INTERVAL_SECONDS,
)
from ci_manager.models import Outcome
from ci_manager.utils import Deadline


class JobTimeout(RuntimeError):
    """A Jenkins job did not finish before the run deadline."""


def job_path(job: str) -> str:
    """Translate ``folder/job`` into the ``job/folder/job/job`` URL path.

    Args:
        job: Slash-separated job name, as shown in Jenkins.

    Returns:
        URL path segment for the job.
    """
    return "/".join(f"job/{quote(part, safe='')}" for part in job.split("/") if part)


def parse_outcome(result: str | None) -> Outcome:
    """Map a Jenkins build result string onto :class:`Outcome`."""
    if result is None:
        return Outcome.ABORTED
    try:
        return Outcome(result)
    except ValueError:
        # NOT_BUILT and friends carry no signal
        return Outcome.ABORTED


class JenkinsClient:
    """Thin wrapper over the Jenkins JSON API.

    Args:
        cfg: Jenkins server configuration.
        session: Optional pre-configured requests session.
    """

    def __init__(self, cfg: JenkinsConfig, session: requests.Session | None = None) -> None:
        self.cfg = cfg
        self.base_url = cfg.url.rstrip("/")
        self.session = session or requests.Session()
        if cfg.user and cfg.token:
            self.session.auth = (cfg.user, cfg.token)

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    def job_url(self, job: str, branch: str | None = None) -> str:
        """URL of a job, or of one branch of a multibranch job."""
        url = f"{self.base_url}/{job_path(job)}"
        if branch:
            url += f"/job/{quote(branch, safe='')}"
        return url

    def build_url(self, job: str, number: int) -> str:
        return f"{self.job_url(job)}/{number}"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(HTTP_MAX_RETRIES),
        wait=wait_fixed(HTTP_RETRY_WAIT_SECONDS),
        retry=retry_if_exception_type(requests.ConnectionError),
        reraise=True,
    )
    def _get(self, url: str, **kwargs) -> requests.Response:
        return self.session.get(url, timeout=HTTP_TIMEOUT_SECONDS, **kwargs)

    def _get_json(self, url: str, **kwargs) -> dict:
        resp = self._get(url, **kwargs)
        resp.raise_for_status()
        return resp.json()

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def trigger(self, job: str, params: dict[str, str], branch: str | None = None) -> str:
        """Queue a parameterized build without waiting for it.

        Args:
            job: Job to build.
            params: Build parameters.
            branch: Branch of a multibranch job, if any.

        Returns:
            URL of the queue item tracking the request.
        """
        resp = self.session.post(
            f"{self.job_url(job, branch)}/buildWithParameters",
            params=params,
            timeout=HTTP_TIMEOUT_SECONDS,
        )
        resp.raise_for_status()
        location = resp.headers.get("Location", "")
        logger.info("Queued %s with %s (%s)", job, params, location)
        return location

    def wait_for_queue(self, queue_url: str, deadline: Deadline) -> int:
        """Wait until a queued request becomes a numbered build.

        Raises:
            JobTimeout: If the build does not start before the deadline.
        """

        @retry(
            stop=stop_after_delay(deadline.remaining()),
            wait=wait_fixed(QUEUE_POLL_INTERVAL_SECONDS),
            retry=retry_if_result(lambda number: number is None),
        )
        def _poll() -> int | None:
            item = self._get_json(f"{queue_url.rstrip('/')}/api/json")
            if item.get("cancelled"):
                raise RuntimeError(f"Queue item {queue_url} was cancelled")
            executable = item.get("executable") or {}
            return executable.get("number")

        try:
            return _poll()
        except RetryError as err:
            raise JobTimeout(f"{queue_url} did not start before the deadline") from err

    def wait_for_build(self, job: str, number: int, deadline: Deadline) -> Outcome:
        """Block until build ``number`` of ``job`` has finished.

        Raises:
            JobTimeout: If the build is still running at the deadline.
        """

        @retry(
            stop=stop_after_delay(deadline.remaining()),
            wait=wait_fixed(self.cfg.poll_interval),
            retry=retry_if_result(lambda build: build.get("building", True)),
        )
        def _poll() -> dict:
            return self._get_json(f"{self.build_url(job, number)}/api/json", params={"tree": "building,result"})

        try:
            build = _poll()
        except RetryError as err:
            raise JobTimeout(f"{job}#{number} still running at the deadline") from err
        return parse_outcome(build.get("result"))

    def run_job(self, job: str, params: dict[str, str], deadline: Deadline) -> tuple[int, Outcome]:
        """Queue a build and block until it finishes.

        Returns:
            Tuple of (build number, outcome).
        """
        queue_url = self.trigger(job, params)
        number = self.wait_for_queue(queue_url, deadline)
        logger.info("%s#%d started", job, number)
        return number, self.wait_for_build(job, number, deadline)

    def artifact(self, job: str, number: int, path: str) -> bytes | None:
        """Fetch an archived artifact, or None when the build has no such file."""
        resp = self._get(f"{self.build_url(job, number)}/artifact/{path}")
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.content

    def history(
        self,
        job: str,
        depth: int,
        before: int | None = None,
        branch: str | None = None,
    ) -> list[Outcome]:
        """Return past build outcomes of ``job``, oldest first.

        Args:
            job: Job whose history to read.
            depth: Maximum number of builds to fetch.
            before: Only builds numbered below this are returned.
            branch: Branch of a multibranch job, if any.

        Returns:
            Outcomes of finished builds, oldest first.
        """
        data = self._get_json(
            f"{self.job_url(job, branch)}/api/json",
            params={"tree": f"builds[number,result,building]{{0,{depth}}}"},
        )
        outcomes = []
        for build in data.get("builds", []):
            if build.get("building"):
                continue
            if before is not None and build.get("number", 0) >= before:
                continue
            outcomes.append(parse_outcome(build.get("result")))
        outcomes.reverse()
        return outcomes
