"""Connected Jenkins account storage."""

from jenkins_bridge.credentials.store import CredentialError, CredentialStore, JenkinsUserInfo

__all__ = ["CredentialStore", "CredentialError", "JenkinsUserInfo"]
