"""Mattermost API access."""

from jenkins_bridge.mattermost.client import MattermostClient, MattermostError

__all__ = ["MattermostClient", "MattermostError"]
