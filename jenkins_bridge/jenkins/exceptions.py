"""Jenkins client exception classes."""


class JenkinsError(Exception):
    """Base exception for Jenkins errors."""
    pass


class JenkinsAuthError(JenkinsError):
    """Raised when Jenkins rejects the supplied credentials."""
    def __init__(self, username: str = ""):
        self.username = username
        msg = "Jenkins rejected the credentials"
        if username:
            msg += f" for user {username}"
        super().__init__(msg)


class JobNotFoundError(JenkinsError):
    """Raised when a job does not exist."""
    def __init__(self, job_name: str):
        self.job_name = job_name
        super().__init__(f"Job not found: {job_name}")


class BuildTimeoutError(JenkinsError):
    """Raised when a queued build never starts."""
    def __init__(self, queue_url: str, timeout: float):
        self.queue_url = queue_url
        self.timeout = timeout
        super().__init__(f"Build did not start within {timeout:.0f}s (queue item: {queue_url})")


class JenkinsAPIError(JenkinsError):
    """Raised when a Jenkins request fails."""
    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        if status_code is not None:
            message = f"{message} (HTTP {status_code})"
        super().__init__(message)
