"""FastAPI server for Mattermost slash commands and dialogs."""

import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request, status
from pydantic import BaseModel

from jenkins_bridge.config import BridgeSettings, load_settings
from jenkins_bridge.credentials.store import CredentialStore
from jenkins_bridge.mattermost.client import MattermostClient, MattermostError
from jenkins_bridge.slash_commands.dialogs import CREATE_JOB_DIALOG_CALLBACK
from jenkins_bridge.slash_commands.handlers import CommandContext, JenkinsCommandHandler
from jenkins_bridge.slash_commands.parser import CommandParser
from jenkins_bridge.slash_commands.registry import SlashCommandRegistry
from jenkins_bridge.webhook.auth import CommandTokenAuth

logger = logging.getLogger(__name__)


class SlashCommandResponse(BaseModel):
    """Response for slash command."""

    response_type: str = "ephemeral"  # in_channel or ephemeral
    text: str
    username: Optional[str] = None
    icon_url: Optional[str] = None


class DialogSubmission(BaseModel):
    """Mattermost interactive dialog submission."""

    type: str = "dialog_submission"
    callback_id: str = ""
    state: str = ""
    user_id: str
    channel_id: str
    team_id: str = ""
    submission: Optional[dict[str, Any]] = None
    cancelled: bool = False


def create_handler(settings: BridgeSettings, auth: Optional[CommandTokenAuth] = None) -> JenkinsCommandHandler:
    """Wire a command handler to Redis, Mattermost and Jenkins from settings.

    Raises:
        ValueError: no encryption key is configured
    """
    if not settings.encryption_key:
        raise ValueError(
            "encryption_key is not set; configure bridge.encryption_key or JENKINS_BRIDGE_ENCRYPTION_KEY"
        )
    store = CredentialStore(
        encryption_key=settings.encryption_key,
        redis_url=settings.redis_url,
        prefix=settings.key_prefix,
    )
    mattermost = MattermostClient(settings.mattermost_url, settings.bot_token)
    return JenkinsCommandHandler(
        jenkins_url=settings.jenkins_url,
        store=store,
        mattermost=mattermost,
        public_url=settings.public_url,
        poll_interval=settings.build_poll_interval,
        poll_timeout=settings.build_poll_timeout,
        auth=auth,
    )


def create_app(
    settings: Optional[BridgeSettings] = None,
    handler: Optional[JenkinsCommandHandler] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Bridge settings (defaults to environment-only settings)
        handler: Command handler; built from ``settings`` when omitted

    Returns:
        Configured FastAPI application
    """
    settings = settings or BridgeSettings()
    auth = CommandTokenAuth(settings.command_token) if settings.command_token else None
    handler = handler or create_handler(settings, auth)
    parser = CommandParser(trigger=settings.trigger)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        logger.info("Starting Jenkins bridge")
        if settings.register_command:
            registry = SlashCommandRegistry(settings.mattermost_url, settings.bot_token)
            try:
                await asyncio.to_thread(
                    registry.ensure_command, settings.team_id, settings.trigger, f"{settings.public_url}/command"
                )
            finally:
                registry.close()
        yield
        await handler.mattermost.aclose()
        logger.info("Shutting down Jenkins bridge")

    app = FastAPI(
        title="Jenkins Bridge",
        description="Mattermost slash commands for a Jenkins server",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "message": "Jenkins bridge is running"}

    @app.post("/command", response_model=SlashCommandResponse, response_model_exclude_none=True)
    async def handle_slash_command(request: Request, background_tasks: BackgroundTasks):
        """Handle Mattermost slash command callback.

        Mattermost sends POST requests with form-urlencoded data.
        """
        form_data = await request.form()
        payload = dict(form_data)

        command = payload.get("command", "")
        text = payload.get("text", "")
        user_id = payload.get("user_id", "")
        channel_id = payload.get("channel_id", "")
        trigger_id = payload.get("trigger_id", "")

        if auth and not auth.verify(payload.get("token")):
            logger.warning(
                f"AUDIT: Invalid slash command token for {command}",
                extra={
                    "event_type": "slash_command_rejected",
                    "user_id": user_id,
                    "reason": "invalid_token",
                },
            )
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid command token",
            )

        # Mattermost splits the trigger into "command" and the rest into "text"
        command_line = f"{command} {text}".strip()

        logger.info(
            f"AUDIT: Slash command invocation - {command}",
            extra={
                "event_type": "slash_command",
                "command": command,
                "user_id": user_id,
                "channel_id": channel_id,
                "trigger_id": trigger_id,
            },
        )

        parsed = parser.parse(command_line)
        if not parsed:
            logger.warning(
                f"AUDIT: Unknown slash command - {command}",
                extra={
                    "event_type": "slash_command_unknown",
                    "command": command,
                    "user_id": user_id,
                    "channel_id": channel_id,
                },
            )
            return SlashCommandResponse(
                response_type="ephemeral",
                text=f"Unknown command. Use {parser.trigger} help for available commands.",
            )

        context = CommandContext(
            user_id=user_id,
            channel_id=channel_id,
            trigger_id=trigger_id,
            team_id=payload.get("team_id", ""),
        )
        result = await handler.dispatch(parsed, context)

        logger.info(
            f"AUDIT: Executed slash command - {parsed.command}",
            extra={
                "event_type": "slash_command_executed",
                "command": parsed.command,
                "success": result.success,
                "user_id": user_id,
                "channel_id": channel_id,
            },
        )

        if result.followup is not None:
            background_tasks.add_task(result.followup)

        return SlashCommandResponse(response_type=result.response_type, text=result.message)

    @app.post("/dialog/build")
    async def submit_build_dialog(submission: DialogSubmission, background_tasks: BackgroundTasks):
        """Trigger a parameterized build from the parameters dialog."""
        if submission.cancelled:
            return {}

        job_name = handler.open_state(submission.state, submission.user_id)
        if not job_name:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid dialog state",
            )

        logger.info(
            f"AUDIT: Build dialog submitted for {job_name}",
            extra={
                "event_type": "dialog_build",
                "job_name": job_name,
                "user_id": submission.user_id,
                "channel_id": submission.channel_id,
            },
        )

        context = CommandContext(user_id=submission.user_id, channel_id=submission.channel_id)
        result = await handler.submit_build_dialog(context, job_name, submission.submission)
        if not result.success:
            return {"error": result.message}

        if result.followup is not None:
            background_tasks.add_task(result.followup)
        try:
            await handler.mattermost.create_ephemeral_post(submission.user_id, submission.channel_id, result.message)
        except MattermostError as e:
            logger.error(f"Error confirming build of {job_name}: {e}")
        return {}

    @app.post("/dialog/createjob")
    async def submit_create_job_dialog(submission: DialogSubmission):
        """Create a job from the createjob dialog."""
        if submission.cancelled:
            return {}

        if handler.open_state(submission.state, submission.user_id) != CREATE_JOB_DIALOG_CALLBACK:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid dialog state",
            )

        logger.info(
            "AUDIT: Create job dialog submitted",
            extra={
                "event_type": "dialog_createjob",
                "user_id": submission.user_id,
                "channel_id": submission.channel_id,
            },
        )

        context = CommandContext(user_id=submission.user_id, channel_id=submission.channel_id)
        return await handler.submit_create_job_dialog(context, submission.submission)

    return app


def main():
    """Run the bridge server."""
    import uvicorn

    parser = argparse.ArgumentParser(description="Mattermost slash command bridge for Jenkins")
    parser.add_argument("--config", default="config.yaml", help="Path to config file")
    args = parser.parse_args()

    settings = load_settings(args.config)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
