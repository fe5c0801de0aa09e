"""Redis-backed storage for connected Jenkins accounts.

API tokens are encrypted with JWE (direct key, AES-256-GCM) before they
reach Redis.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

import redis
from jose import jwe
from jose.exceptions import JOSEError

logger = logging.getLogger(__name__)

KEY_ALGORITHM = "dir"
CONTENT_ENCRYPTION = "A256GCM"
KEY_LENGTH = 32


class CredentialError(Exception):
    """Raised when stored credentials cannot be read or written."""
    pass


@dataclass
class JenkinsUserInfo:
    """Jenkins account connected to a Mattermost user."""

    user_id: str
    username: str
    token: str


class CredentialStore:
    """Store Jenkins credentials per Mattermost user."""

    def __init__(
        self,
        encryption_key: str,
        redis_url: str = "redis://localhost:6379",
        prefix: str = "jenkins-bridge",
        client: Optional[redis.Redis] = None,
    ):
        key = encryption_key.encode() if isinstance(encryption_key, str) else encryption_key
        if len(key) != KEY_LENGTH:
            raise CredentialError(f"Encryption key must be {KEY_LENGTH} bytes, got {len(key)}")
        self.key = key
        self.redis = client if client is not None else redis.from_url(redis_url, decode_responses=True)
        self.prefix = prefix

    def _key(self, user_id: str) -> str:
        return f"{self.prefix}:user:{user_id}"

    def _encrypt(self, text: str) -> str:
        token = jwe.encrypt(text.encode(), self.key, algorithm=KEY_ALGORITHM, encryption=CONTENT_ENCRYPTION)
        return token.decode() if isinstance(token, bytes) else token

    def _decrypt(self, text: str) -> str:
        try:
            return jwe.decrypt(text, self.key).decode()
        except JOSEError as e:
            raise CredentialError(f"Could not decrypt stored token: {e}")

    def store(self, info: JenkinsUserInfo) -> None:
        """Save (or replace) the Jenkins account of a user."""
        record = {
            "user_id": info.user_id,
            "username": info.username,
            "token": self._encrypt(info.token),
        }
        try:
            self.redis.set(self._key(info.user_id), json.dumps(record))
        except redis.RedisError as e:
            logger.error("Failed to save Jenkins credentials to Redis: %s", e)
            raise CredentialError(f"Failed to save credentials: {e}")
        logger.debug(f"Credentials saved for user {info.user_id}")

    def get(self, user_id: str) -> Optional[JenkinsUserInfo]:
        """Load the Jenkins account of a user.

        Returns:
            JenkinsUserInfo, or None if the user never connected

        Raises:
            CredentialError: Redis failed or the record is unreadable
        """
        try:
            data = self.redis.get(self._key(user_id))
        except redis.RedisError as e:
            logger.error("Failed to load Jenkins credentials from Redis: %s", e)
            raise CredentialError(f"Failed to load credentials: {e}")
        if not data:
            return None

        try:
            record = json.loads(data)
            return JenkinsUserInfo(
                user_id=record["user_id"],
                username=record["username"],
                token=self._decrypt(record["token"]),
            )
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            logger.warning("Stored credentials corrupted for user %s: %s", user_id, e)
            raise CredentialError(f"Stored credentials are corrupted: {e}")

    def delete(self, user_id: str) -> None:
        try:
            self.redis.delete(self._key(user_id))
        except redis.RedisError as e:
            logger.error("Failed to delete Jenkins credentials from Redis: %s", e)
            raise CredentialError(f"Failed to delete credentials: {e}")
        logger.debug(f"Credentials deleted for user {user_id}")
