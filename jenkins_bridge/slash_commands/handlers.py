"""Slash command handlers."""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from jenkins_bridge.credentials.store import CredentialError, CredentialStore, JenkinsUserInfo
from jenkins_bridge.jenkins.client import DEFAULT_POLL_INTERVAL, DEFAULT_POLL_TIMEOUT, JenkinsClient
from jenkins_bridge.jenkins.exceptions import JenkinsAuthError, JenkinsError, JobNotFoundError
from jenkins_bridge.mattermost.client import MattermostClient, MattermostError
from jenkins_bridge.slash_commands.dialogs import (
    CREATE_JOB_DIALOG_CALLBACK,
    build_parameters_dialog,
    create_job_dialog,
    submission_to_parameters,
)
from jenkins_bridge.slash_commands.parser import ParsedCommand, parse_build_parameters
from jenkins_bridge.webhook.auth import CommandTokenAuth

logger = logging.getLogger(__name__)

HELP_TEXT = """###### Mattermost Jenkins Bridge - Slash Command Help

###### Connect and disconnect with Jenkins server
* `/jenkins connect username APIToken` - Connect your Mattermost account to Jenkins.
* `/jenkins disconnect` - Disconnect your Mattermost account from Jenkins.

###### Interact with Jenkins jobs
* `/jenkins createjob` - Create a job using config.xml.
* `/jenkins build jobname [key=value ...]` - Trigger a build for the given job.
  * If the job resides in a folder, specify the job as `folder1/jobname`.
  * If the folder name or job name has spaces in it, wrap the job name in double quotes as `"job name with space"` or `"folder with space/jobname"`.
  * Build parameters can be given as `key=value` pairs. Without them a parameterized job opens a dialog.
* `/jenkins abort jobname <build number>` - Abort a build. Without a build number the last build is aborted.
* `/jenkins enable jobname` - Enable a job.
* `/jenkins disable jobname` - Disable a job.
* `/jenkins delete jobname` - Delete a job.
* `/jenkins get-artifacts jobname <build number>` - Get artifacts of a build (default: last build).
* `/jenkins test-results jobname <build number>` - Get test results of a build (default: last build).
* `/jenkins get-log jobname <build number>` - Get the log of a build (default: last build).

###### Interact with plugins
* `/jenkins plugins` - List the plugins installed on the Jenkins server.

###### Adhoc commands
* `/jenkins safe-restart` - Safe restart the Jenkins server.
* `/jenkins me` - Display the connected Jenkins account.
* `/jenkins help` - Show this message."""

JOB_NOT_SPECIFIED = "Please specify a job name to build."
NOT_CONNECTED = "Please connect your Jenkins account using `/jenkins connect username APIToken`."


def help_hint(action: str) -> str:
    return f"Please check `/jenkins help` to find help on how to {action}."


@dataclass
class CommandContext:
    """Who ran a command, and where."""

    user_id: str
    channel_id: str
    trigger_id: str = ""
    team_id: str = ""


@dataclass
class CommandResult:
    """Result of a command execution."""

    success: bool
    message: str
    response_type: str = "ephemeral"  # in_channel or ephemeral
    followup: Optional[Callable[[], Awaitable[None]]] = None


def _ephemeral(message: str, success: bool = False) -> CommandResult:
    return CommandResult(success=success, message=message, response_type="ephemeral")


def _in_channel(message: str) -> CommandResult:
    return CommandResult(success=True, message=message, response_type="in_channel")


def _build_label(build_number: str, job_name: str) -> str:
    if build_number:
        return f"the build #{build_number} of the job '{job_name}'"
    return f"the last build of the job '{job_name}'"


ClientFactory = Callable[[JenkinsUserInfo], JenkinsClient]


class JenkinsCommandHandler:
    """Dispatch `/jenkins` actions to Jenkins.

    Each action that takes a job parses its trailing tokens once with
    ``parse_build_parameters``. Jenkins, Mattermost and credential
    failures are logged and reported back to the user; nothing here
    raises to the HTTP layer.
    """

    def __init__(
        self,
        jenkins_url: str,
        store: CredentialStore,
        mattermost: MattermostClient,
        public_url: str = "",
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        poll_timeout: float = DEFAULT_POLL_TIMEOUT,
        client_factory: Optional[ClientFactory] = None,
        auth: Optional[CommandTokenAuth] = None,
    ):
        self.jenkins_url = jenkins_url
        self.auth = auth
        self.store = store
        self.mattermost = mattermost
        self.public_url = public_url.rstrip("/")
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self.client_factory = client_factory or self._default_client
        self.actions: dict[str, Callable[[list[str], CommandContext], Awaitable[CommandResult]]] = {
            "connect": self.handle_connect,
            "disconnect": self.handle_disconnect,
            "me": self.handle_me,
            "build": self.handle_build,
            "abort": self.handle_abort,
            "enable": self.handle_enable,
            "disable": self.handle_disable,
            "delete": self.handle_delete,
            "get-artifacts": self.handle_get_artifacts,
            "test-results": self.handle_test_results,
            "get-log": self.handle_get_log,
            "plugins": self.handle_plugins,
            "safe-restart": self.handle_safe_restart,
            "createjob": self.handle_createjob,
            "help": self.handle_help,
            "": self.handle_help,
        }

    def seal_state(self, user_id: str, value: str) -> str:
        """Bind dialog state to the user the dialog is opened for."""
        state = f"{user_id}:{value}"
        return self.auth.sign_state(state) if self.auth else state

    def open_state(self, state: Optional[str], user_id: str) -> Optional[str]:
        """Value sealed into dialog state.

        Returns:
            The value, or None when the signature is bad or the state was
            sealed for a different user
        """
        opened = self.auth.open_state(state) if self.auth else state
        if not opened or ":" not in opened:
            return None
        owner, value = opened.split(":", 1)
        if owner != user_id:
            logger.warning(
                "Dialog state sealed for another user", extra={"user_id": user_id, "owner_id": owner}
            )
            return None
        return value

    def _default_client(self, info: JenkinsUserInfo) -> JenkinsClient:
        return JenkinsClient(
            self.jenkins_url,
            info.username,
            info.token,
            poll_interval=self.poll_interval,
            poll_timeout=self.poll_timeout,
        )

    async def dispatch(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        """Run the action named by a parsed command."""
        handler = self.actions.get(parsed.command)
        if handler is None:
            return _ephemeral(f"###### Unknown Command: {parsed.command}\n{HELP_TEXT}")
        return await handler(parsed.args, context)

    async def _client_for(self, user_id: str) -> Optional[JenkinsClient]:
        info = self.store.get(user_id)
        if info is None:
            return None
        return self.client_factory(info)

    async def _with_client(
        self,
        context: CommandContext,
        error_message: str,
        action: Callable[[JenkinsClient], Awaitable[CommandResult]],
        **log_fields: Any,
    ) -> CommandResult:
        """Run ``action`` with the user's Jenkins client and report failures."""
        try:
            client = await self._client_for(context.user_id)
        except CredentialError as e:
            logger.error(f"Error fetching Jenkins user details: {e}", extra={"user_id": context.user_id})
            return _ephemeral("Encountered an error getting your Jenkins user information.")
        if client is None:
            return _ephemeral(NOT_CONNECTED)

        try:
            return await action(client)
        except JobNotFoundError as e:
            return _ephemeral(f"Job '{e.job_name}' was not found.")
        except JenkinsAuthError as e:
            logger.warning(f"{error_message} {e}", extra={"user_id": context.user_id, **log_fields})
            return _ephemeral(f"{error_message} Jenkins rejected your credentials, try `/jenkins connect` again.")
        except (JenkinsError, MattermostError) as e:
            logger.error(f"{error_message} {e}", extra={"user_id": context.user_id, **log_fields})
            return _ephemeral(error_message)
        finally:
            await client.aclose()

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    async def handle_connect(self, args: list[str], context: CommandContext) -> CommandResult:
        if len(args) != 2:
            return _ephemeral("Please specify both username and API token.")
        username, token = args
        info = JenkinsUserInfo(user_id=context.user_id, username=username, token=token)

        client = self.client_factory(info)
        try:
            await client.verify_credentials()
        except JenkinsError as e:
            logger.error(f"Error connecting to Jenkins: {e}", extra={"user_id": context.user_id})
            return _ephemeral("Error connecting to Jenkins.")
        finally:
            await client.aclose()

        try:
            self.store.store(info)
        except CredentialError as e:
            logger.error(f"Error saving Jenkins user information: {e}", extra={"user_id": context.user_id})
            return _ephemeral("Encountered an error saving your Jenkins user information.")
        return _ephemeral("Your Jenkins account has been successfully connected to Mattermost.", success=True)

    async def handle_disconnect(self, args: list[str], context: CommandContext) -> CommandResult:
        try:
            info = self.store.get(context.user_id)
            if info is None:
                return _ephemeral(NOT_CONNECTED)
            self.store.delete(context.user_id)
        except CredentialError as e:
            logger.error(f"Error disconnecting the user: {e}", extra={"user_id": context.user_id})
            return _ephemeral("Encountered an error while disconnecting the user from Jenkins.")
        return _ephemeral(f"User '{info.username}' has been disconnected.", success=True)

    async def handle_me(self, args: list[str], context: CommandContext) -> CommandResult:
        try:
            info = self.store.get(context.user_id)
        except CredentialError as e:
            logger.error(f"Error fetching Jenkins user details: {e}", extra={"user_id": context.user_id})
            return _ephemeral("Encountered an error getting your Jenkins user information.")
        if info is None:
            return _ephemeral(NOT_CONNECTED)
        return _ephemeral(f"You are connected to Jenkins as: {info.username}", success=True)

    # ------------------------------------------------------------------
    # Builds
    # ------------------------------------------------------------------

    async def handle_build(self, args: list[str], context: CommandContext) -> CommandResult:
        """Trigger a build, or open the parameters dialog for a parameterized job."""
        if not args:
            return _ephemeral(JOB_NOT_SPECIFIED)
        parsed = parse_build_parameters(args)
        if not parsed.ok:
            return _ephemeral(help_hint("trigger a job"))
        job_name = parsed.job_name

        async def build(client: JenkinsClient) -> CommandResult:
            job_parameters = await client.job_parameters(job_name)
            if job_parameters and not parsed.parameters:
                state = self.seal_state(context.user_id, job_name)
                dialog = build_parameters_dialog(job_name, job_parameters, state=state)
                await self.mattermost.open_dialog(context.trigger_id, f"{self.public_url}/dialog/build", dialog)
                return _ephemeral(f"Enter the build parameters of the job '{job_name}'.", success=True)

            queue_url = await client.build_job(job_name, parsed.parameters)
            return CommandResult(
                success=True,
                message=f"Build of the job '{job_name}' has been queued.",
                response_type="ephemeral",
                followup=lambda: self.announce_build(context, job_name, queue_url),
            )

        return await self._with_client(
            context, f"Error triggering build for the job '{job_name}'.", build, job_name=job_name
        )

    async def announce_build(self, context: CommandContext, job_name: str, queue_url: str) -> None:
        """Wait for a queued build to start and post it to the channel."""
        try:
            client = await self._client_for(context.user_id)
        except CredentialError as e:
            logger.error(f"Error fetching Jenkins user details: {e}", extra={"user_id": context.user_id})
            return
        if client is None:
            return

        try:
            build = await client.wait_for_build(queue_url)
            await self.mattermost.create_post(
                context.channel_id,
                f"Job '{job_name}' - #{build.number} has been started\nBuild URL : {build.url}",
            )
        except (JenkinsError, MattermostError) as e:
            logger.error(f"Error waiting for build of {job_name}: {e}", extra={"job_name": job_name})
            try:
                await self.mattermost.create_ephemeral_post(
                    context.user_id, context.channel_id, f"Error starting the build of the job '{job_name}'."
                )
            except MattermostError as post_error:
                logger.error(f"Error notifying user {context.user_id}: {post_error}")
        finally:
            await client.aclose()

    async def submit_build_dialog(
        self, context: CommandContext, job_name: str, submission: Optional[dict[str, Any]]
    ) -> CommandResult:
        """Trigger a build with the values entered in the parameters dialog."""
        parameters = submission_to_parameters(submission)

        async def build(client: JenkinsClient) -> CommandResult:
            queue_url = await client.build_job(job_name, parameters)
            return CommandResult(
                success=True,
                message=f"Build of the job '{job_name}' has been queued.",
                followup=lambda: self.announce_build(context, job_name, queue_url),
            )

        return await self._with_client(
            context, f"Error triggering build for the job '{job_name}'.", build, job_name=job_name
        )

    async def handle_abort(self, args: list[str], context: CommandContext) -> CommandResult:
        if not args:
            return _ephemeral("Please specify a job name or jobname and build number.")
        parsed = parse_build_parameters(args)
        if not parsed.ok:
            return _ephemeral(help_hint("abort a build"))

        async def abort(client: JenkinsClient) -> CommandResult:
            build = await client.abort_build(parsed.job_name, parsed.build_number)
            if parsed.build_number:
                return _in_channel(f"Build #{build.number} of the job '{parsed.job_name}' has been aborted.")
            return _in_channel(f"Last build of the job '{parsed.job_name}' has been aborted.")

        return await self._with_client(
            context, "Encountered an error in aborting the build.", abort, job_name=parsed.job_name
        )

    async def handle_get_artifacts(self, args: list[str], context: CommandContext) -> CommandResult:
        if not args:
            return _ephemeral(JOB_NOT_SPECIFIED)
        parsed = parse_build_parameters(args)
        if not parsed.ok:
            return _ephemeral(help_hint("get artifacts of a build"))

        async def artifacts(client: JenkinsClient) -> CommandResult:
            build, found = await client.get_artifacts(parsed.job_name, parsed.build_number)
            label = _build_label(str(build.number), parsed.job_name)
            if not found:
                return _ephemeral(f"No artifacts found in {label}.", success=True)
            for artifact in found:
                content = await client.download_artifact(artifact)
                await self.mattermost.post_file(
                    context.channel_id, artifact.file_name, content, message=f"Artifact of {label}"
                )
            return _ephemeral(f"Uploaded {len(found)} artifact(s) of {label}.", success=True)

        return await self._with_client(context, "Error fetching artifacts.", artifacts, job_name=parsed.job_name)

    async def handle_test_results(self, args: list[str], context: CommandContext) -> CommandResult:
        if not args:
            return _ephemeral(JOB_NOT_SPECIFIED)
        parsed = parse_build_parameters(args)
        if not parsed.ok:
            return _ephemeral(help_hint("get test results of a build"))

        async def test_results(client: JenkinsClient) -> CommandResult:
            results = await client.get_test_results(parsed.job_name, parsed.build_number)
            return _in_channel(
                f"Test results of {_build_label(parsed.build_number, parsed.job_name)}: "
                f"{results.pass_count} passed, {results.fail_count} failed, {results.skip_count} skipped\n"
                f"{results.url}"
            )

        return await self._with_client(
            context, "Error fetching test results.", test_results, job_name=parsed.job_name
        )

    async def handle_get_log(self, args: list[str], context: CommandContext) -> CommandResult:
        if not args:
            return _ephemeral("Please specify a job name or jobname and build number.")
        parsed = parse_build_parameters(args)
        if not parsed.ok:
            return _ephemeral(help_hint("get log of a build"))

        async def get_log(client: JenkinsClient) -> CommandResult:
            build, log = await client.get_console_log(parsed.job_name, parsed.build_number)
            filename = f"{parsed.job_name.replace('/', '_')}-{build.number}.log"
            label = _build_label(str(build.number), parsed.job_name)
            await self.mattermost.post_file(
                context.channel_id, filename, log.encode("utf-8"), message=f"Log of {label}"
            )
            return _ephemeral(f"Uploaded the log of {label}.", success=True)

        return await self._with_client(
            context, "Encountered an error fetching logs.", get_log, job_name=parsed.job_name
        )

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def _job_action(
        self,
        args: list[str],
        context: CommandContext,
        verb: str,
        missing_message: str,
        error_message: str,
        done_message: str,
    ) -> CommandResult:
        """Shared flow of enable, disable and delete; none accepts a build number."""
        if not args:
            return _ephemeral(missing_message)
        parsed = parse_build_parameters(args)
        if not parsed.ok or parsed.build_number:
            return _ephemeral(help_hint(f"{verb} a job"))

        async def run(client: JenkinsClient) -> CommandResult:
            method = {
                "enable": client.enable_job,
                "disable": client.disable_job,
                "delete": client.delete_job,
            }[verb]
            await method(parsed.job_name)
            return _in_channel(done_message.format(job=parsed.job_name))

        return await self._with_client(context, error_message, run, job_name=parsed.job_name)

    async def handle_enable(self, args: list[str], context: CommandContext) -> CommandResult:
        return await self._job_action(
            args, context, "enable",
            "Please specify a job to enable.",
            "Error enabling the job.",
            "Job '{job}' has been enabled",
        )

    async def handle_disable(self, args: list[str], context: CommandContext) -> CommandResult:
        return await self._job_action(
            args, context, "disable",
            "Please specify a job to disable.",
            "Error disabling the job.",
            "Job '{job}' has been disabled",
        )

    async def handle_delete(self, args: list[str], context: CommandContext) -> CommandResult:
        return await self._job_action(
            args, context, "delete",
            "Please specify a job to delete.",
            "Encountered an error while deleting the job.",
            "Job '{job}' has been deleted.",
        )

    async def handle_createjob(self, args: list[str], context: CommandContext) -> CommandResult:
        if args:
            return _ephemeral(help_hint("create a job"))

        async def open_dialog(client: JenkinsClient) -> CommandResult:
            dialog = create_job_dialog(self.seal_state(context.user_id, CREATE_JOB_DIALOG_CALLBACK))
            await self.mattermost.open_dialog(context.trigger_id, f"{self.public_url}/dialog/createjob", dialog)
            return _ephemeral("Fill in the job details in the dialog.", success=True)

        return await self._with_client(context, "Encountered an error while creating the job.", open_dialog)

    async def submit_create_job_dialog(
        self, context: CommandContext, submission: Optional[dict[str, Any]]
    ) -> dict[str, Any]:
        """Create a job from the dialog values.

        Returns:
            Mattermost dialog response: ``{}`` on success, otherwise
            ``errors`` per field or a general ``error``
        """
        submission = submission or {}
        job_name = (submission.get("job_name") or "").strip()
        config_xml = submission.get("config_xml") or ""
        errors = {}
        if not job_name:
            errors["job_name"] = "Job name is required."
        if not config_xml.strip():
            errors["config_xml"] = "config.xml is required."
        if errors:
            return {"errors": errors}

        async def create(client: JenkinsClient) -> CommandResult:
            await client.create_job(job_name, config_xml)
            await self.mattermost.create_post(context.channel_id, f"Job '{job_name}' has been created.")
            return CommandResult(success=True, message="")

        result = await self._with_client(
            context, "Encountered an error while creating the job.", create, job_name=job_name
        )
        if not result.success:
            return {"error": result.message}
        return {}

    # ------------------------------------------------------------------
    # Server
    # ------------------------------------------------------------------

    async def handle_plugins(self, args: list[str], context: CommandContext) -> CommandResult:
        if args:
            return _ephemeral(help_hint("get a list of plugins"))

        async def plugins(client: JenkinsClient) -> CommandResult:
            installed = await client.plugins()
            if not installed:
                return _ephemeral("No plugins are installed on the Jenkins server.", success=True)
            lines = ["Installed plugins:"]
            lines.extend(
                f"* {p.long_name} (`{p.short_name}`) {p.version}"
                for p in sorted(installed, key=lambda p: p.long_name.lower())
            )
            return _ephemeral("\n".join(lines), success=True)

        return await self._with_client(
            context, "Encountered an error while fetching list of installed plugins.", plugins
        )

    async def handle_safe_restart(self, args: list[str], context: CommandContext) -> CommandResult:
        if args:
            return _ephemeral(help_hint("safe restart Jenkins"))

        async def restart(client: JenkinsClient) -> CommandResult:
            await client.safe_restart()
            return _in_channel("Safe restart of Jenkins server has been triggered.")

        return await self._with_client(
            context, "Encountered an error while safe restarting the Jenkins server.", restart
        )

    async def handle_help(self, args: list[str], context: CommandContext) -> CommandResult:
        return _ephemeral(HELP_TEXT, success=True)
