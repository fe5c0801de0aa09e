"""Slash command and dialog request authentication."""

import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class CommandTokenAuth:
    """Check the token Mattermost sends with every slash command request.

    Dialog submissions carry no token, so dialog ``state`` is signed
    with HMAC-SHA256 under the same token instead.
    """

    def __init__(self, token: str):
        self.token = token.encode() if isinstance(token, str) else token

    def verify(self, candidate: Optional[str]) -> bool:
        """Compare a request token with the configured one in constant time.

        Args:
            candidate: ``token`` field of the slash command request

        Returns:
            True if the token matches, False otherwise
        """
        if not candidate:
            logger.warning("No command token provided")
            return False

        return hmac.compare_digest(self.token, candidate.encode())

    def sign_state(self, state: str) -> str:
        """Prefix dialog state with its hex HMAC-SHA256 signature."""
        signature = hmac.new(self.token, state.encode(), hashlib.sha256).hexdigest()
        return f"{signature}:{state}"

    def open_state(self, signed: Optional[str]) -> Optional[str]:
        """Return the state behind a signature, or None if it was tampered with."""
        if not signed or ":" not in signed:
            logger.warning("Dialog state is missing its signature")
            return None

        signature, state = signed.split(":", 1)
        expected = hmac.new(self.token, state.encode(), hashlib.sha256).hexdigest()
        if not hmac.compare_digest(expected, signature):
            logger.warning("Dialog state signature mismatch")
            return None
        return state
