"""
Authentication service layer - clinician login, password recovery stub and
patient access-code redemption.
"""
import asyncio
import logging
from typing import Dict, Optional

from ..access.registry import AccessGrantRegistry
from ..config import settings
from ..core.clock import Clock, system_clock
from ..core.codes import generate_identifier
from ..core.security import create_access_token, decode_access_token, verify_password
from .exceptions import (
    AccountNotFoundException,
    AccountNotVerifiedException,
    FieldValidationException,
    InvalidAccessCodeException,
    InvalidCredentialsException,
    InvalidTokenException,
)
from .schemas import AuthenticatedIdentity, IdentityRole, RecoveryNotice
from .session import AuthSession
from .store import CredentialStore, normalize_email

# Set up logging
logger = logging.getLogger(__name__)

class SessionAuthenticator:
    """
    Turns credentials and access codes into authenticated identities.

    Args:
        credentials: Committed clinician accounts
        grants: Access grants issued to patients
        clock: Time source for grant expiry
        latency: Seconds to suspend before answering (models the network)
    """

    def __init__(
        self,
        credentials: CredentialStore,
        grants: AccessGrantRegistry,
        clock: Clock = system_clock,
        latency: Optional[float] = None,
    ):
        self.credentials = credentials
        self.grants = grants
        self.clock = clock
        self.latency = settings.simulated_latency_seconds if latency is None else latency

    async def login(self, email: str, password: str, session: Optional[AuthSession] = None) -> Optional[AuthenticatedIdentity]:
        """
        Authenticate a clinician.

        Args:
            email: Email in any casing
            password: Credential secret
            session: If given, the identity is attached to it

        Returns:
            The clinician identity, or None if ``session`` was logged out
            while the login was in flight

        Raises:
            FieldValidationException: If email or password is empty
            AccountNotFoundException: If no account uses this email
            InvalidCredentialsException: If the password does not match
            AccountNotVerifiedException: If email verification is incomplete
        """
        errors: Dict[str, str] = {}
        if not (email or "").strip():
            errors["email"] = "Enter your email address"
        if not password:
            errors["password"] = "Enter your password"
        if errors:
            raise FieldValidationException(errors)

        token = session.token() if session else None
        await self._pause()

        key = normalize_email(email)
        account = self.credentials.find_by_email(key)
        if account is None:
            logger.warning(f"Login failed: no account for {key}")
            raise AccountNotFoundException()

        if not await asyncio.to_thread(verify_password, password, account.password_hash):
            logger.warning(f"Login failed: invalid credentials for {key}")
            raise InvalidCredentialsException()

        if not account.is_verified:
            logger.warning(f"Login failed: account {account.id} not verified")
            raise AccountNotVerifiedException()

        identity = AuthenticatedIdentity(role=IdentityRole.CLINICIAN, name=account.name, id=account.id)
        if session is not None and not session.sign_in(token, identity):
            return None
        logger.info(f"Login successful: clinician {account.id}")
        return identity

    async def redeem_access_code(
        self,
        patient_name: str,
        access_code: str,
        session: Optional[AuthSession] = None,
    ) -> Optional[AuthenticatedIdentity]:
        """
        Admit a patient with an access code.

        The grant is not consumed here; it becomes unusable once a screening
        result is recorded against it.

        Returns:
            The patient identity, or None if ``session`` was logged out
            while the redemption was in flight

        Raises:
            FieldValidationException: If name or code is empty
            InvalidAccessCodeException: If the code is unknown, used or expired
        """
        name = (patient_name or "").strip()
        code = (access_code or "").strip()
        errors: Dict[str, str] = {}
        if not name:
            errors["patient_name"] = "Enter your name"
        if not code:
            errors["access_code"] = "Enter the access code"
        if errors:
            raise FieldValidationException(errors)

        token = session.token() if session else None
        await self._pause()

        grant = self.grants.find_by_code(code)
        if grant is None or not grant.is_redeemable(self.clock.today()):
            logger.warning("Access code rejected")
            raise InvalidAccessCodeException()

        identity = AuthenticatedIdentity(
            role=IdentityRole.PATIENT,
            name=name,
            id=generate_identifier("patient"),
            access_code=grant.code,
        )
        if session is not None and not session.sign_in(token, identity):
            return None
        logger.info(f"Access code {grant.code} accepted for patient {identity.id}")
        return identity

    async def forgot_password(self, email: str) -> RecoveryNotice:
        """
        Password recovery stub: confirms that instructions were dispatched.

        No reset is performed and the credential is never revealed.

        Raises:
            FieldValidationException: If email is empty
            AccountNotFoundException: If no account uses this email
        """
        if not (email or "").strip():
            raise FieldValidationException({"email": "Enter your email to recover the password"})

        await self._pause()
        key = normalize_email(email)
        account = self.credentials.find_by_email(key)
        if account is None:
            logger.warning(f"Password recovery failed: no account for {key}")
            raise AccountNotFoundException("No user with this email was found")

        logger.info(f"Password recovery instructions requested for clinician {account.id}")
        return RecoveryNotice(email=key)

    def logout(self, session: AuthSession) -> None:
        session.logout()

    async def _pause(self) -> None:
        if self.latency > 0:
            await asyncio.sleep(self.latency)


def issue_identity_token(identity: AuthenticatedIdentity) -> str:
    """Signed bearer token for an identity."""
    claims = {
        "sub": identity.id,
        "role": identity.role.value,
        "name": identity.name,
    }
    if identity.access_code:
        claims["access_code"] = identity.access_code
    return create_access_token(claims)

def identity_from_token(token: str) -> AuthenticatedIdentity:
    """
    Rebuild an identity from a bearer token.

    Raises:
        InvalidTokenException: If the token is invalid or expired
    """
    claims = decode_access_token(token)
    if not claims or "sub" not in claims or "role" not in claims:
        raise InvalidTokenException()
    try:
        role = IdentityRole(claims["role"])
    except ValueError:
        raise InvalidTokenException()
    return AuthenticatedIdentity(
        role=role,
        name=claims.get("name", ""),
        id=claims["sub"],
        access_code=claims.get("access_code"),
    )
