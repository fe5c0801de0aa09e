"""HTTP endpoints Mattermost calls back into.

The FastAPI app lives in ``jenkins_bridge.webhook.server``; it is not
re-exported here because the command handlers import this package.
"""

from jenkins_bridge.webhook.auth import CommandTokenAuth

__all__ = ["CommandTokenAuth"]
