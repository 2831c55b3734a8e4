"""
Session-scoped holder of the authenticated identity.

Identities are never persisted: they live in an AuthSession until logout.
Like the registration flow, the session carries a generation token so that a
login or redemption finishing after a logout cannot sign the user back in.
"""
import logging
from typing import Optional

from .schemas import AuthenticatedIdentity

# Set up logging
logger = logging.getLogger(__name__)

class AuthSession:
    """One interactive session (browser tab, CLI run, ...)."""

    def __init__(self):
        self.identity: Optional[AuthenticatedIdentity] = None
        self.generation = 0

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    def token(self) -> int:
        """Generation to remember before starting a suspending operation."""
        return self.generation

    def sign_in(self, token: int, identity: AuthenticatedIdentity) -> bool:
        """
        Attach ``identity`` if nothing happened since ``token`` was taken.

        Returns:
            True if applied, False for a stale completion
        """
        if token != self.generation:
            logger.info(f"Discarding stale sign-in for {identity.role.value} {identity.id}")
            return False
        self.generation += 1
        self.identity = identity
        return True

    def logout(self) -> None:
        if self.identity is not None:
            logger.info(f"Signed out {self.identity.role.value} {self.identity.id}")
        self.generation += 1
        self.identity = None
