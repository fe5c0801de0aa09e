"""Jenkins REST API access."""

from jenkins_bridge.jenkins.client import JenkinsClient, job_path
from jenkins_bridge.jenkins.exceptions import (
    BuildTimeoutError,
    JenkinsAPIError,
    JenkinsAuthError,
    JenkinsError,
    JobNotFoundError,
)
from jenkins_bridge.jenkins.models import Artifact, Build, BuildTestResults, JobParameter, PluginInfo

__all__ = [
    "JenkinsClient",
    "job_path",
    "JenkinsError",
    "JenkinsAuthError",
    "JenkinsAPIError",
    "JobNotFoundError",
    "BuildTimeoutError",
    "Artifact",
    "Build",
    "BuildTestResults",
    "JobParameter",
    "PluginInfo",
]
