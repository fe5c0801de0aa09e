"""Fixtures for command handler tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from jenkins_bridge.credentials.store import JenkinsUserInfo
from jenkins_bridge.jenkins.models import Build
from jenkins_bridge.slash_commands.handlers import CommandContext, JenkinsCommandHandler


@pytest.fixture
def user_info():
    return JenkinsUserInfo(user_id="user123", username="alice", token="api-token")


@pytest.fixture
def store(user_info):
    """Credential store with a connected user."""
    store = MagicMock()
    store.get.return_value = user_info
    return store


@pytest.fixture
def jenkins():
    """Mocked JenkinsClient."""
    client = AsyncMock()
    client.job_parameters.return_value = []
    client.build_job.return_value = "http://jenkins/queue/item/7/"
    client.wait_for_build.return_value = Build(number=42, url="http://jenkins/job/app/42/")
    return client


@pytest.fixture
def mattermost():
    """Mocked MattermostClient."""
    return AsyncMock()


@pytest.fixture
def handler(store, jenkins, mattermost):
    return JenkinsCommandHandler(
        jenkins_url="http://jenkins",
        store=store,
        mattermost=mattermost,
        public_url="http://bridge.example.com/",
        client_factory=lambda info: jenkins,
    )


@pytest.fixture
def context():
    return CommandContext(user_id="user123", channel_id="channel123", trigger_id="trigger123")
