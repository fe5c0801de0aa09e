"""Mattermost REST API client for the bridge bot.

Posts follow-up messages, opens interactive dialogs and uploads files
on behalf of the bot account.
"""

import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class MattermostError(Exception):
    """Raised when a Mattermost API call fails."""
    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        if status_code is not None:
            message = f"{message} (HTTP {status_code})"
        super().__init__(message)


class MattermostClient:
    """Send messages to Mattermost as the bot user."""

    def __init__(
        self,
        mattermost_url: str = "http://localhost:8065",
        bot_token: str = "",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.mattermost_url = mattermost_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=f"{self.mattermost_url}/api/v4",
            headers={"Authorization": f"Bearer {bot_token}"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _post(self, path: str, **kwargs: Any) -> dict:
        try:
            response = await self.client.post(path, **kwargs)
        except httpx.RequestError as e:
            raise MattermostError(f"Could not connect to Mattermost ({e})")
        if response.status_code >= 400:
            logger.error("Mattermost API %s failed: %s", path, response.text[:200])
            raise MattermostError(f"POST {path} failed", response.status_code)
        try:
            return response.json()
        except ValueError:
            return {}

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    async def create_post(
        self,
        channel_id: str,
        message: str,
        file_ids: Optional[list[str]] = None,
    ) -> dict:
        """Post a message visible to the whole channel."""
        payload: dict[str, Any] = {"channel_id": channel_id, "message": message}
        if file_ids:
            payload["file_ids"] = file_ids
        post = await self._post("/posts", json=payload)
        logger.info("Sent (channel:%s): %s", channel_id, message[:100])
        return post

    async def create_ephemeral_post(self, user_id: str, channel_id: str, message: str) -> dict:
        """Post a message only the given user can see."""
        payload = {
            "user_id": user_id,
            "post": {"channel_id": channel_id, "message": message},
        }
        post = await self._post("/posts/ephemeral", json=payload)
        logger.info("Sent (ephemeral user:%s): %s", user_id, message[:100])
        return post

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def upload_file(self, channel_id: str, filename: str, content: bytes) -> str:
        """Upload a file to a channel and return its file id."""
        data = await self._post(
            "/files",
            data={"channel_id": channel_id},
            files={"files": (filename, content)},
        )
        infos = data.get("file_infos") or []
        if not infos:
            raise MattermostError(f"Upload of {filename} returned no file info")
        return infos[0]["id"]

    async def post_file(self, channel_id: str, filename: str, content: bytes, message: str = "") -> dict:
        file_id = await self.upload_file(channel_id, filename, content)
        return await self.create_post(channel_id, message, file_ids=[file_id])

    # ------------------------------------------------------------------
    # Interactive dialogs
    # ------------------------------------------------------------------

    async def open_dialog(self, trigger_id: str, url: str, dialog: dict) -> None:
        """Open an interactive dialog in reply to a slash command.

        Args:
            trigger_id: Trigger id from the slash command request
            url: Callback URL Mattermost posts the submission to
            dialog: Dialog definition
        """
        await self._post(
            "/actions/dialogs/open",
            json={"trigger_id": trigger_id, "url": url, "dialog": dialog},
        )
        logger.info("Opened dialog %r", dialog.get("title", ""))
