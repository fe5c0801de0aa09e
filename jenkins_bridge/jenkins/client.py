"""Async Jenkins REST API client."""

import asyncio
import logging
import time
from typing import Any, Optional
from urllib.parse import quote

import httpx

from jenkins_bridge.jenkins.exceptions import (
    BuildTimeoutError,
    JenkinsAPIError,
    JenkinsAuthError,
    JobNotFoundError,
)
from jenkins_bridge.jenkins.models import (
    Artifact,
    Build,
    BuildTestResults,
    JobParameter,
    PluginInfo,
)

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 10.0  # seconds
DEFAULT_POLL_TIMEOUT = 120.0
DEFAULT_REQUEST_TIMEOUT = 30.0

LAST_BUILD = "lastBuild"


def job_path(job_name: str) -> str:
    """Turn ``folder/job`` into the ``job/folder/job/job`` URL path."""
    segments = [s for s in job_name.strip("/").split("/") if s]
    return "/".join(f"job/{quote(s, safe='')}" for s in segments)


class JenkinsClient:
    """Talk to one Jenkins server on behalf of one user.

    Every call authenticates with the user's API token (HTTP basic auth).
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        token: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        poll_timeout: float = DEFAULT_POLL_TIMEOUT,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=(username, token),
            timeout=timeout,
            transport=transport,
        )
        self._crumb: Optional[dict[str, str]] = None

    async def __aenter__(self) -> "JenkinsClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _crumb_header(self) -> dict[str, str]:
        """Fetch the CSRF crumb header once; empty when CSRF protection is off."""
        if self._crumb is None:
            try:
                response = await self.client.get("/crumbIssuer/api/json")
            except httpx.RequestError as e:
                raise JenkinsAPIError(f"Could not connect to Jenkins ({e})")
            if response.status_code == 200:
                data = self._json(response)
                try:
                    self._crumb = {data["crumbRequestField"]: data["crumb"]}
                except (KeyError, TypeError) as e:
                    raise JenkinsAPIError(f"Malformed crumb from Jenkins (missing {e})")
            else:
                self._crumb = {}
        return self._crumb

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        """Decode a JSON object body; login pages and proxies send HTML instead."""
        try:
            data = response.json()
        except ValueError:
            raise JenkinsAPIError(
                f"Jenkins returned a non-JSON response for {response.request.url.path}", response.status_code
            )
        if not isinstance(data, dict):
            raise JenkinsAPIError(f"Unexpected JSON from Jenkins for {response.request.url.path}")
        return data

    async def _request(
        self,
        method: str,
        url: str,
        job_name: Optional[str] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and map HTTP failures to Jenkins exceptions.

        Args:
            method: HTTP method
            url: Path relative to the server, or an absolute URL
            job_name: Job the request is about; a 404 then means the job is missing

        Returns:
            The successful response

        Raises:
            JenkinsAuthError: 401/403 responses
            JobNotFoundError: 404 responses for job requests
            JenkinsAPIError: any other failure
        """
        headers = dict(kwargs.pop("headers", None) or {})
        if method == "POST":
            headers.update(await self._crumb_header())

        try:
            response = await self.client.request(method, url, headers=headers, **kwargs)
        except httpx.RequestError as e:
            raise JenkinsAPIError(f"Could not connect to Jenkins ({e})")

        if response.status_code in (401, 403):
            raise JenkinsAuthError(self.username)
        if response.status_code == 404 and job_name is not None:
            raise JobNotFoundError(job_name)
        if response.status_code >= 400:
            raise JenkinsAPIError(f"{method} {url} failed", response.status_code)
        return response

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    async def verify_credentials(self) -> str:
        """Check the credentials and return the Jenkins user id."""
        response = await self._request("GET", "/me/api/json")
        user_id = self._json(response).get("id", self.username)
        logger.info(f"Verified Jenkins credentials for {user_id}")
        return user_id

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def get_job(self, job_name: str) -> dict:
        response = await self._request("GET", f"/{job_path(job_name)}/api/json", job_name=job_name)
        return self._json(response)

    async def job_parameters(self, job_name: str) -> list[JobParameter]:
        """List the parameters a job declares (empty for plain jobs)."""
        job = await self.get_job(job_name)
        parameters = []
        for prop in job.get("property") or []:
            for definition in prop.get("parameterDefinitions") or []:
                parameters.append(JobParameter.from_api(definition))
        return parameters

    async def build_job(self, job_name: str, parameters: Optional[dict[str, str]] = None) -> str:
        """Queue a build and return the queue item URL.

        Args:
            job_name: Job to build
            parameters: Build parameters; uses ``buildWithParameters`` when given

        Returns:
            Absolute URL of the queue item
        """
        if parameters:
            url = f"/{job_path(job_name)}/buildWithParameters"
            response = await self._request("POST", url, job_name=job_name, params=parameters)
        else:
            url = f"/{job_path(job_name)}/build"
            response = await self._request("POST", url, job_name=job_name)

        queue_url = response.headers.get("Location", "")
        if not queue_url:
            raise JenkinsAPIError(f"Jenkins did not return a queue item for job {job_name}")
        logger.info(f"Queued build of {job_name}: {queue_url}")
        return queue_url

    async def wait_for_build(self, queue_url: str) -> Build:
        """Poll a queue item until Jenkins turns it into a build.

        Raises:
            BuildTimeoutError: the item did not start within ``poll_timeout``
            JenkinsAPIError: the item was cancelled
        """
        deadline = time.monotonic() + self.poll_timeout
        url = f"{queue_url.rstrip('/')}/api/json"
        while True:
            response = await self._request("GET", url)
            item = self._json(response)
            if item.get("cancelled"):
                raise JenkinsAPIError(f"Queue item was cancelled: {queue_url}")
            executable = item.get("executable")
            if executable:
                return Build.from_api(executable)
            if time.monotonic() + self.poll_interval > deadline:
                raise BuildTimeoutError(queue_url, self.poll_timeout)
            logger.debug(f"Build still queued ({item.get('why', 'waiting')}), polling again")
            await asyncio.sleep(self.poll_interval)

    async def enable_job(self, job_name: str) -> None:
        await self._request("POST", f"/{job_path(job_name)}/enable", job_name=job_name)

    async def disable_job(self, job_name: str) -> None:
        await self._request("POST", f"/{job_path(job_name)}/disable", job_name=job_name)

    async def delete_job(self, job_name: str) -> None:
        await self._request("POST", f"/{job_path(job_name)}/doDelete", job_name=job_name)

    async def create_job(self, job_name: str, config_xml: str) -> None:
        """Create a job from a ``config.xml`` document.

        A ``folder/name`` job name creates the job inside that folder.
        """
        parent, _, name = job_name.strip("/").rpartition("/")
        url = f"/{job_path(parent)}/createItem" if parent else "/createItem"
        await self._request(
            "POST",
            url,
            params={"name": name},
            content=config_xml.encode("utf-8"),
            headers={"Content-Type": "application/xml"},
        )
        logger.info(f"Created job {job_name}")

    # ------------------------------------------------------------------
    # Builds
    # ------------------------------------------------------------------

    async def get_build(self, job_name: str, build_number: str = "") -> Build:
        """Fetch a build; an empty build number means the last build."""
        data = await self._get_build_data(job_name, build_number)
        return Build.from_api(data)

    async def _get_build_data(self, job_name: str, build_number: str) -> dict:
        number = build_number or LAST_BUILD
        response = await self._request(
            "GET", f"/{job_path(job_name)}/{number}/api/json", job_name=job_name
        )
        return self._json(response)

    async def abort_build(self, job_name: str, build_number: str = "") -> Build:
        """Stop a running build and return it."""
        build = await self.get_build(job_name, build_number)
        await self._request(
            "POST", f"/{job_path(job_name)}/{build.number}/stop", job_name=job_name
        )
        logger.info(f"Aborted build #{build.number} of {job_name}")
        return build

    async def get_artifacts(self, job_name: str, build_number: str = "") -> tuple[Build, list[Artifact]]:
        data = await self._get_build_data(job_name, build_number)
        build = Build.from_api(data)
        artifacts = [Artifact.from_api(build.url, a) for a in data.get("artifacts") or []]
        return build, artifacts

    async def download_artifact(self, artifact: Artifact) -> bytes:
        response = await self._request("GET", artifact.url)
        return response.content

    async def get_test_results(self, job_name: str, build_number: str = "") -> BuildTestResults:
        """Fetch the test report summary of a build.

        Raises:
            JenkinsAPIError: the build recorded no test results
        """
        build = await self.get_build(job_name, build_number)
        try:
            response = await self._request("GET", f"{build.url.rstrip('/')}/testReport/api/json")
        except JenkinsAPIError as e:
            if e.status_code == 404:
                raise JenkinsAPIError(f"No test results for build #{build.number} of {job_name}")
            raise
        return BuildTestResults.from_api(build.url, self._json(response))

    async def get_console_log(self, job_name: str, build_number: str = "") -> tuple[Build, str]:
        build = await self.get_build(job_name, build_number)
        response = await self._request(
            "GET", f"/{job_path(job_name)}/{build.number}/consoleText", job_name=job_name
        )
        return build, response.text

    # ------------------------------------------------------------------
    # Server
    # ------------------------------------------------------------------

    async def plugins(self) -> list[PluginInfo]:
        response = await self._request("GET", "/pluginManager/api/json", params={"depth": 1})
        return [PluginInfo.from_api(p) for p in self._json(response).get("plugins") or []]

    async def safe_restart(self) -> None:
        await self._request("POST", "/safeRestart")
        logger.info("Triggered safe restart of Jenkins")
