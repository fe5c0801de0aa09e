"""Unit tests for the Jenkins client (mocked HTTP transport)."""

import httpx
import pytest

from jenkins_bridge.jenkins.client import JenkinsClient, job_path
from jenkins_bridge.jenkins.exceptions import (
    BuildTimeoutError,
    JenkinsAPIError,
    JenkinsAuthError,
    JobNotFoundError,
)
from jenkins_bridge.jenkins.models import Artifact

JENKINS_URL = "http://jenkins.example.com"


class FakeJenkins:
    """Routes requests to canned responses and records them."""

    def __init__(self, routes):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        route = self.routes.get(key)
        if route is None:
            return httpx.Response(404)
        if callable(route):
            return route(request)
        # fresh copy per request so canned responses can be served repeatedly
        return httpx.Response(route.status_code, headers=route.headers, content=route.content)


def make_client(routes, **kwargs):
    fake = FakeJenkins(routes)
    client = JenkinsClient(JENKINS_URL, "alice", "token", transport=httpx.MockTransport(fake), **kwargs)
    return client, fake


class TestJobPath:
    """Tests for job_path."""

    def test_plain_job(self):
        assert job_path("app") == "job/app"

    def test_folder_job(self):
        assert job_path("folder/sub/app") == "job/folder/job/sub/job/app"

    def test_spaces_are_quoted(self):
        assert job_path("my folder/my job") == "job/my%20folder/job/my%20job"

    def test_stray_slashes(self):
        assert job_path("/folder//app/") == "job/folder/job/app"


class TestRequests:
    """Tests for authentication and error mapping."""

    @pytest.mark.asyncio
    async def test_verify_credentials(self):
        """Test credentials are sent with basic auth."""
        client, fake = make_client({("GET", "/me/api/json"): httpx.Response(200, json={"id": "alice"})})

        assert await client.verify_credentials() == "alice"
        assert fake.requests[0].headers["Authorization"].startswith("Basic ")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_unauthorized(self):
        """Test 401 maps to JenkinsAuthError."""
        client, _ = make_client({("GET", "/me/api/json"): httpx.Response(401)})

        with pytest.raises(JenkinsAuthError):
            await client.verify_credentials()
        await client.aclose()

    @pytest.mark.asyncio
    async def test_job_not_found(self):
        """Test 404 on a job maps to JobNotFoundError."""
        client, _ = make_client({})

        with pytest.raises(JobNotFoundError) as exc_info:
            await client.get_job("missing")
        assert exc_info.value.job_name == "missing"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_server_error(self):
        """Test other failures map to JenkinsAPIError with status."""
        client, _ = make_client({("GET", "/pluginManager/api/json"): httpx.Response(500)})

        with pytest.raises(JenkinsAPIError) as exc_info:
            await client.plugins()
        assert exc_info.value.status_code == 500
        await client.aclose()

    @pytest.mark.asyncio
    async def test_connection_error(self):
        """Test transport failures map to JenkinsAPIError."""
        def fail(request):
            raise httpx.ConnectError("refused", request=request)

        client = JenkinsClient(JENKINS_URL, "alice", "token", transport=httpx.MockTransport(fail))

        with pytest.raises(JenkinsAPIError):
            await client.verify_credentials()
        await client.aclose()

    @pytest.mark.asyncio
    async def test_crumb_sent_on_post(self):
        """Test the CSRF crumb is fetched once and sent on POSTs."""
        client, fake = make_client({
            ("GET", "/crumbIssuer/api/json"): httpx.Response(
                200, json={"crumbRequestField": "Jenkins-Crumb", "crumb": "abc"}
            ),
            ("POST", "/job/app/enable"): httpx.Response(200),
            ("POST", "/job/app/disable"): httpx.Response(200),
        })

        await client.enable_job("app")
        await client.disable_job("app")

        posts = [r for r in fake.requests if r.method == "POST"]
        assert all(r.headers["Jenkins-Crumb"] == "abc" for r in posts)
        assert sum(1 for r in fake.requests if r.url.path == "/crumbIssuer/api/json") == 1
        await client.aclose()

    @pytest.mark.asyncio
    async def test_no_crumb_when_disabled(self):
        """Test POSTs work without a crumb issuer."""
        client, fake = make_client({("POST", "/job/app/doDelete"): httpx.Response(302)})

        await client.delete_job("app")

        assert "Jenkins-Crumb" not in fake.requests[-1].headers
        await client.aclose()

    @pytest.mark.asyncio
    async def test_login_page_instead_of_json(self):
        """Test an HTML page from a proxy or SSO login maps to JenkinsAPIError."""
        client, _ = make_client({("GET", "/me/api/json"): httpx.Response(200, text="<html>login</html>")})

        with pytest.raises(JenkinsAPIError, match="non-JSON"):
            await client.verify_credentials()
        await client.aclose()

    @pytest.mark.asyncio
    async def test_json_that_is_not_an_object(self):
        client, _ = make_client({("GET", "/job/app/api/json"): httpx.Response(200, json=["app"])})

        with pytest.raises(JenkinsAPIError):
            await client.get_job("app")
        await client.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "crumb_response",
        [
            httpx.Response(200, text="<html>login</html>"),
            httpx.Response(200, json={"crumb": "abc"}),
        ],
        ids=["non-json", "missing field"],
    )
    async def test_bad_crumb(self, crumb_response):
        """Test an unusable crumb issuer reply maps to JenkinsAPIError."""
        client, fake = make_client({
            ("GET", "/crumbIssuer/api/json"): crumb_response,
            ("POST", "/job/app/enable"): httpx.Response(200),
        })

        with pytest.raises(JenkinsAPIError):
            await client.enable_job("app")
        assert all(r.method == "GET" for r in fake.requests)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_queue_item_not_json(self):
        client, _ = make_client({("GET", "/queue/item/7/api/json"): httpx.Response(200, text="busy")})

        with pytest.raises(JenkinsAPIError):
            await client.wait_for_build(f"{JENKINS_URL}/queue/item/7/")
        await client.aclose()


class TestBuilds:
    """Tests for triggering and inspecting builds."""

    @pytest.mark.asyncio
    async def test_build_job(self):
        """Test a plain build returns the queue URL."""
        client, fake = make_client({
            ("POST", "/job/folder/job/my app/build"): httpx.Response(
                201, headers={"Location": f"{JENKINS_URL}/queue/item/7/"}
            ),
        })

        assert await client.build_job("folder/my app") == f"{JENKINS_URL}/queue/item/7/"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_build_job_with_parameters(self):
        """Test parameters go to buildWithParameters."""
        client, fake = make_client({
            ("POST", "/job/app/buildWithParameters"): httpx.Response(
                201, headers={"Location": f"{JENKINS_URL}/queue/item/8/"}
            ),
        })

        await client.build_job("app", {"env": "prod"})

        assert fake.requests[-1].url.params["env"] == "prod"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_build_job_without_location(self):
        """Test a missing queue item is an error."""
        client, _ = make_client({("POST", "/job/app/build"): httpx.Response(201)})

        with pytest.raises(JenkinsAPIError):
            await client.build_job("app")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_wait_for_build(self):
        """Test polling until the queue item becomes a build."""
        responses = iter([
            {"why": "Waiting for next available executor"},
            {"executable": {"number": 42, "url": f"{JENKINS_URL}/job/app/42/"}},
        ])
        client, _ = make_client(
            {("GET", "/queue/item/7/api/json"): lambda request: httpx.Response(200, json=next(responses))},
            poll_interval=0.01,
            poll_timeout=5,
        )

        build = await client.wait_for_build(f"{JENKINS_URL}/queue/item/7/")

        assert build.number == 42
        assert build.url == f"{JENKINS_URL}/job/app/42/"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_wait_for_build_timeout(self):
        """Test a build that never leaves the queue."""
        client, _ = make_client(
            {("GET", "/queue/item/7/api/json"): httpx.Response(200, json={"why": "Waiting"})},
            poll_interval=0.01,
            poll_timeout=0.05,
        )

        with pytest.raises(BuildTimeoutError):
            await client.wait_for_build(f"{JENKINS_URL}/queue/item/7/")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_wait_for_cancelled_build(self):
        """Test a cancelled queue item."""
        client, _ = make_client(
            {("GET", "/queue/item/7/api/json"): httpx.Response(200, json={"cancelled": True})},
        )

        with pytest.raises(JenkinsAPIError):
            await client.wait_for_build(f"{JENKINS_URL}/queue/item/7/")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_get_last_build(self):
        """Test an empty build number reads lastBuild."""
        client, fake = make_client({
            ("GET", "/job/app/lastBuild/api/json"): httpx.Response(
                200, json={"number": 9, "url": f"{JENKINS_URL}/job/app/9/", "building": True}
            ),
        })

        build = await client.get_build("app")

        assert build.number == 9
        assert build.building is True
        await client.aclose()

    @pytest.mark.asyncio
    async def test_abort_build(self):
        """Test abort resolves the build and stops it."""
        client, fake = make_client({
            ("GET", "/job/app/lastBuild/api/json"): httpx.Response(
                200, json={"number": 9, "url": f"{JENKINS_URL}/job/app/9/"}
            ),
            ("POST", "/job/app/9/stop"): httpx.Response(302),
        })

        build = await client.abort_build("app")

        assert build.number == 9
        assert fake.requests[-1].url.path == "/job/app/9/stop"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_get_artifacts(self):
        """Test artifacts carry download URLs."""
        client, _ = make_client({
            ("GET", "/job/app/3/api/json"): httpx.Response(200, json={
                "number": 3,
                "url": f"{JENKINS_URL}/job/app/3/",
                "artifacts": [{"fileName": "app.jar", "relativePath": "target/app.jar"}],
            }),
        })

        build, artifacts = await client.get_artifacts("app", "3")

        assert build.number == 3
        assert artifacts[0].url == f"{JENKINS_URL}/job/app/3/artifact/target/app.jar"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_download_artifact(self):
        """Test artifact bytes are fetched with the user's credentials."""
        client, fake = make_client({
            ("GET", "/job/app/3/artifact/target/app.jar"): httpx.Response(200, content=b"\x00jar"),
        })
        artifact = Artifact("app.jar", "target/app.jar", f"{JENKINS_URL}/job/app/3/artifact/target/app.jar")

        assert await client.download_artifact(artifact) == b"\x00jar"
        assert fake.requests[0].headers["Authorization"].startswith("Basic ")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_get_test_results(self):
        """Test the test report summary."""
        client, _ = make_client({
            ("GET", "/job/app/lastBuild/api/json"): httpx.Response(
                200, json={"number": 4, "url": f"{JENKINS_URL}/job/app/4/"}
            ),
            ("GET", "/job/app/4/testReport/api/json"): httpx.Response(
                200, json={"passCount": 7, "failCount": 1, "skipCount": 0}
            ),
        })

        results = await client.get_test_results("app")

        assert (results.pass_count, results.fail_count, results.skip_count) == (7, 1, 0)
        assert results.url == f"{JENKINS_URL}/job/app/4/testReport"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_get_test_results_missing(self):
        """Test a build without a test report."""
        client, _ = make_client({
            ("GET", "/job/app/lastBuild/api/json"): httpx.Response(
                200, json={"number": 4, "url": f"{JENKINS_URL}/job/app/4/"}
            ),
        })

        with pytest.raises(JenkinsAPIError, match="No test results"):
            await client.get_test_results("app")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_get_console_log(self):
        """Test the console text of a build."""
        client, _ = make_client({
            ("GET", "/job/app/5/api/json"): httpx.Response(200, json={"number": 5, "url": "u"}),
            ("GET", "/job/app/5/consoleText"): httpx.Response(200, text="Finished: SUCCESS"),
        })

        build, log = await client.get_console_log("app", "5")

        assert build.number == 5
        assert log == "Finished: SUCCESS"
        await client.aclose()


class TestJobsAndServer:
    """Tests for job definitions and server calls."""

    @pytest.mark.asyncio
    async def test_job_parameters(self):
        """Test parameter definitions are read from job properties."""
        client, _ = make_client({
            ("GET", "/job/app/api/json"): httpx.Response(200, json={
                "property": [
                    {"_class": "hudson.model.ParametersDefinitionProperty", "parameterDefinitions": [
                        {
                            "name": "env",
                            "type": "ChoiceParameterDefinition",
                            "choices": ["dev", "prod"],
                            "defaultParameterValue": {"value": "dev"},
                        },
                        {"name": "debug", "type": "BooleanParameterDefinition"},
                    ]},
                    {"_class": "other.Property"},
                ],
            }),
        })

        parameters = await client.job_parameters("app")

        assert [p.name for p in parameters] == ["env", "debug"]
        assert parameters[0].choices == ["dev", "prod"]
        assert parameters[0].default == "dev"
        assert parameters[1].default is None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_create_job_in_folder(self):
        """Test creating a job inside a folder posts config.xml."""
        client, fake = make_client({("POST", "/job/folder/createItem"): httpx.Response(200)})

        await client.create_job("folder/app", "<project/>")

        request = fake.requests[-1]
        assert request.url.params["name"] == "app"
        assert request.headers["Content-Type"] == "application/xml"
        assert request.content == b"<project/>"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_create_top_level_job(self):
        """Test creating a job at the root."""
        client, fake = make_client({("POST", "/createItem"): httpx.Response(200)})

        await client.create_job("app", "<project/>")

        assert fake.requests[-1].url.params["name"] == "app"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_plugins(self):
        """Test installed plugins are listed."""
        client, fake = make_client({
            ("GET", "/pluginManager/api/json"): httpx.Response(200, json={"plugins": [
                {"shortName": "git", "longName": "Git plugin", "version": "5.2.1", "active": True},
            ]}),
        })

        plugins = await client.plugins()

        assert plugins[0].short_name == "git"
        assert fake.requests[-1].url.params["depth"] == "1"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_safe_restart(self):
        client, fake = make_client({("POST", "/safeRestart"): httpx.Response(302)})

        await client.safe_restart()

        assert fake.requests[-1].url.path == "/safeRestart"
        await client.aclose()
