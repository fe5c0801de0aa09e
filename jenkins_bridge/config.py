"""Bridge configuration schema."""

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_SECTION = "bridge"


def merge_sections(base: dict, override: dict) -> dict:
    """Return ``base`` with ``override`` layered on top, nested dicts merged key by key."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = merge_sections(merged[key], value)
        else:
            merged[key] = value
    return merged


class BridgeSettings(BaseSettings):
    """Main bridge settings."""

    model_config = SettingsConfigDict(
        env_prefix="JENKINS_BRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Jenkins
    jenkins_url: str = Field(default="http://localhost:8080", description="Base URL of the Jenkins server")
    build_poll_interval: float = Field(default=10.0, gt=0, description="Seconds between queue polls")
    build_poll_timeout: float = Field(default=120.0, gt=0, description="Seconds to wait for a queued build")

    # Mattermost
    mattermost_url: str = Field(default="http://localhost:8065", description="Base URL of Mattermost")
    bot_token: str = Field(default="", description="Access token of the bot account")
    command_token: str = Field(default="", description="Token Mattermost sends with slash commands")
    team_id: str = Field(default="", description="Team to register the slash command in")
    register_command: bool = Field(default=False, description="Register the slash command on startup")
    trigger: str = Field(default="jenkins", description="Slash command trigger word")
    public_url: str = Field(default="http://localhost:8090", description="URL Mattermost reaches this server at")

    # Credential storage
    redis_url: str = Field(default="redis://localhost:6379", description="Redis holding connected accounts")
    key_prefix: str = Field(default="jenkins-bridge", description="Prefix of Redis keys")
    encryption_key: str = Field(default="", description="32-byte key encrypting API tokens (required)")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8090, ge=1, le=65535, description="Server port")
    log_level: str = Field(default="INFO", description="Root log level")

    @field_validator("encryption_key")
    @classmethod
    def _check_key_length(cls, value: str) -> str:
        if value and len(value.encode()) != 32:
            raise ValueError("encryption_key must be exactly 32 bytes")
        return value

    @field_validator("trigger")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        return value.lstrip("/")


def load_settings(config_path: str = "config.yaml", local_path: Optional[str] = None) -> BridgeSettings:
    """Load settings from the ``bridge`` section of a YAML config file.

    ``config.local.yaml`` next to the main file (or ``local_path``) is
    merged over it. Values missing from both come from the environment.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        BridgeSettings instance
    """
    path = Path(config_path)
    local = Path(local_path) if local_path else path.with_name("config.local.yaml")

    data: dict = {}
    for candidate in (path, local):
        if candidate.exists():
            with open(candidate) as f:
                full_config = yaml.safe_load(f) or {}
            data = merge_sections(data, full_config.get(CONFIG_SECTION) or {})
            logger.debug(f"Loaded configuration from {candidate}")

    return BridgeSettings(**data)
