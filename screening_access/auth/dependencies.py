"""
FastAPI dependencies wiring the core components to a request.
"""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ..access.registry import AccessGrantRegistry, SqlAccessGrantRegistry
from ..core.clock import Clock
from ..database import get_db
from .exceptions import InvalidTokenException, RoleDeniedException
from .flow import FlowRegistry
from .schemas import AuthenticatedIdentity, IdentityRole
from .service import SessionAuthenticator, identity_from_token
from .store import CredentialStore, SqlCredentialStore

bearer_scheme = HTTPBearer(auto_error=False)

def get_clock(request: Request) -> Clock:
    return request.app.state.clock

def get_flow_registry(request: Request) -> FlowRegistry:
    return request.app.state.flows

def get_credential_store(db: Session = Depends(get_db)) -> CredentialStore:
    return SqlCredentialStore(db)

def get_grant_registry(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> AccessGrantRegistry:
    return SqlAccessGrantRegistry(db, clock=clock)

def get_authenticator(
    credentials: CredentialStore = Depends(get_credential_store),
    grants: AccessGrantRegistry = Depends(get_grant_registry),
    clock: Clock = Depends(get_clock),
) -> SessionAuthenticator:
    return SessionAuthenticator(credentials, grants, clock=clock)

def get_current_identity(
    bearer: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> AuthenticatedIdentity:
    """
    Resolve the identity carried by the bearer token.

    Raises:
        InvalidTokenException: If the header is missing or the token is invalid
    """
    if bearer is None or not bearer.credentials:
        raise InvalidTokenException()
    return identity_from_token(bearer.credentials)

def require_clinician(identity: AuthenticatedIdentity = Depends(get_current_identity)) -> AuthenticatedIdentity:
    if identity.role != IdentityRole.CLINICIAN:
        raise RoleDeniedException(IdentityRole.CLINICIAN.value, identity.role.value)
    return identity

def require_patient(identity: AuthenticatedIdentity = Depends(get_current_identity)) -> AuthenticatedIdentity:
    if identity.role != IdentityRole.PATIENT:
        raise RoleDeniedException(IdentityRole.PATIENT.value, identity.role.value)
    return identity
