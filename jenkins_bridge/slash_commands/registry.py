"""Mattermost slash command registry."""

import logging
import time
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

# Default retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY = 1.0  # seconds
DEFAULT_BACKOFF_FACTOR = 2.0


class SlashCommandRegistry:
    """Registry for managing Mattermost slash commands."""

    def __init__(
        self,
        mattermost_url: str = "http://localhost:8065",
        bot_token: str = "",
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.mattermost_url = mattermost_url.rstrip("/")
        self.bot_token = bot_token
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.backoff_factor = backoff_factor
        self.client = httpx.Client(
            base_url=f"{self.mattermost_url}/api/v4",
            headers={"Authorization": f"Bearer {bot_token}"},
            timeout=30,
            transport=transport,
        )

    def close(self) -> None:
        self.client.close()

    def _execute_with_retry(
        self,
        method: str,
        path: str,
        retries: Optional[int] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, retrying when Mattermost rate limits it.

        Args:
            method: HTTP method
            path: API path below /api/v4
            retries: Number of retries (defaults to self.max_retries)

        Returns:
            The last response received
        """
        max_retries = retries if retries is not None else self.max_retries
        delay = self.initial_delay

        for attempt in range(max_retries + 1):
            response = self.client.request(method, path, **kwargs)

            if response.status_code == 429 and attempt < max_retries:
                logger.warning(
                    f"Rate limited by Mattermost API, retrying in {delay:.1f}s (attempt {attempt + 1}/{max_retries})"
                )
                time.sleep(delay)
                delay *= self.backoff_factor
                continue

            return response

        # Final attempt failed
        return response

    def register_command(
        self,
        team_id: str,
        trigger: str,
        callback_url: str,
        description: str = "",
        username: str = "jenkins",
        icon_url: str = "",
    ) -> dict[str, Any]:
        """Register a slash command with Mattermost.

        Args:
            team_id: Team the command belongs to
            trigger: Command trigger (without leading slash)
            callback_url: URL Mattermost calls when command is invoked
            description: Human-readable description
            username: Override username for responses
            icon_url: Override icon for responses

        Returns:
            Response from Mattermost API (includes the command ``token``)
        """
        if not self.bot_token:
            logger.warning("No bot token configured, skipping registration")
            return {"error": "no_token"}

        payload = {
            "team_id": team_id,
            "trigger": trigger.lstrip("/"),
            "url": callback_url,
            "method": "P",
            "username": username,
            "display_name": "Jenkins",
            "description": description or "Trigger and query Jenkins jobs",
            "auto_complete": True,
            "auto_complete_desc": "Available commands: connect, disconnect, me, build, get-artifacts, "
            "test-results, get-log, abort, disable, enable, delete, safe-restart, plugins, createjob, help",
            "auto_complete_hint": "[command]",
        }

        if icon_url:
            payload["icon_url"] = icon_url

        try:
            response = self._execute_with_retry("POST", "/commands", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Error registering command: {e}")
            return {"error": str(e)}

        if response.status_code >= 400:
            logger.error(f"Failed to register command: {response.text}")
            return {"error": response.text}

        return response.json()

    def list_commands(self, team_id: str = "") -> list[dict[str, Any]]:
        """List registered slash commands.

        Args:
            team_id: Optional team ID to filter by

        Returns:
            List of registered commands
        """
        if not self.bot_token:
            return []

        params = {"team_id": team_id, "custom_only": "true"} if team_id else {}

        try:
            response = self._execute_with_retry("GET", "/commands", params=params)
        except httpx.HTTPError as e:
            logger.error(f"Error listing commands: {e}")
            return []

        if response.status_code >= 400:
            logger.warning(f"Failed to list commands: {response.text}")
            return []

        return response.json()

    def delete_command(self, command_id: str) -> bool:
        """Delete a registered slash command.

        Args:
            command_id: Command ID to delete

        Returns:
            True if successful
        """
        if not self.bot_token:
            return False

        try:
            response = self._execute_with_retry("DELETE", f"/commands/{command_id}")
        except httpx.HTTPError as e:
            logger.error(f"Error deleting command: {e}")
            return False
        return response.status_code < 400

    def ensure_command(self, team_id: str, trigger: str, callback_url: str) -> dict[str, Any]:
        """Register the command unless one with the same trigger already exists."""
        for command in self.list_commands(team_id):
            if command.get("trigger") == trigger.lstrip("/"):
                logger.info(f"Slash command /{command['trigger']} already registered")
                return command
        return self.register_command(team_id, trigger, callback_url)
