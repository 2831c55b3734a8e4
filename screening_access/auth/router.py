"""
Authentication routes - clinician registration flow, login and recovery.
"""
import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from ..core.audit_service import create_audit_log
from ..database import get_db
from .dependencies import (
    get_authenticator,
    get_credential_store,
    get_current_identity,
    get_flow_registry,
)
from .exceptions import AuthException, VerificationNotStartedException
from .flow import FlowRegistry, VerificationFlow
from .schemas import (
    AuthenticatedIdentity,
    FlowState,
    FlowStep,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    RecoveryNotice,
    RegistrationInput,
    RegistrationResponse,
    VerificationSubmit,
)
from .service import SessionAuthenticator, issue_identity_token
from .store import CredentialStore, normalize_email

# Set up logging
logger = logging.getLogger(__name__)

# Create API router
router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])

def _lookup_flow(flow_id: str, flows: FlowRegistry) -> VerificationFlow:
    flow = flows.get(flow_id)
    if flow is None:
        raise VerificationNotStartedException()
    return flow

# ============================================================================
# REGISTRATION FLOW ROUTES
# ============================================================================

@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=RegistrationResponse, summary="Start Clinician Registration")
async def register_route(
    data: RegistrationInput,
    request: Request,
    flows: FlowRegistry = Depends(get_flow_registry),
    store: CredentialStore = Depends(get_credential_store),
    db: Session = Depends(get_db)
):
    """
    Clinician self-registration endpoint.

    Validates the form, emails a 6-digit verification code and returns the
    id of the registration flow to use for resend/verify. Nothing is stored
    until the code is verified. When the email cannot be delivered the step
    contains a preview of the message instead.
    """
    email = normalize_email(data.email)
    await create_audit_log(db, action="CLINICIAN_REGISTRATION_INITIATED", request=request, details={"email": email})

    flow_id, flow = flows.create()
    try:
        step = await flow.begin_registration(data, store=store)
    except AuthException as e:
        flows.discard(flow_id)
        await create_audit_log(db, action="CLINICIAN_REGISTRATION_REJECTED", request=request, details={"email": email, "error": e.error})
        raise

    await create_audit_log(
        db,
        action="VERIFICATION_EMAIL_SENT" if step.delivery and step.delivery.success else "VERIFICATION_EMAIL_FAILED_TO_SEND",
        request=request,
        details={"email": email, "flow_id": flow_id}
    )
    return RegistrationResponse(flow_id=flow_id, step=step)

@router.get("/register/{flow_id}", response_model=FlowStep, summary="Registration Flow Status")
async def registration_status_route(
    flow_id: str,
    flows: FlowRegistry = Depends(get_flow_registry)
):
    """Current state of a registration flow, including the resend cooldown."""
    return _lookup_flow(flow_id, flows).snapshot()

@router.post("/register/{flow_id}/resend", response_model=FlowStep, summary="Resend Verification Code")
async def resend_verification_route(
    flow_id: str,
    request: Request,
    flows: FlowRegistry = Depends(get_flow_registry),
    db: Session = Depends(get_db)
):
    """
    Issue a new verification code.

    The first resend is always allowed; after that it is a no-op (``resent``
    is false) while the cooldown since the previous resend is running.
    """
    flow = _lookup_flow(flow_id, flows)
    step = await flow.resend()
    if step.resent:
        await create_audit_log(db, action="RESEND_VERIFICATION_EMAIL_SENT", request=request, details={"email": step.email, "flow_id": flow_id})
    return step

@router.post("/register/{flow_id}/verify", response_model=FlowStep, summary="Verify Email Code")
async def verify_email_route(
    flow_id: str,
    data: VerificationSubmit,
    request: Request,
    flows: FlowRegistry = Depends(get_flow_registry),
    store: CredentialStore = Depends(get_credential_store),
    db: Session = Depends(get_db)
):
    """Confirm the emailed code; on success the clinician account is created."""
    flow = _lookup_flow(flow_id, flows)
    email = flow.pending.account.email if flow.pending else None
    try:
        step = await flow.verify(data.code, store=store)
    except AuthException as e:
        await create_audit_log(db, action="EMAIL_VERIFICATION_FAILED", request=request, details={"email": email, "error": e.error})
        raise

    if step.state == FlowState.VERIFIED:
        await create_audit_log(db, action="EMAIL_VERIFICATION_SUCCESS", actor_id=flow.account.id, request=request, details={"email": email})
        flows.discard(flow_id)
    return step

@router.delete("/register/{flow_id}", response_model=FlowStep, summary="Abandon Registration")
async def abandon_registration_route(
    flow_id: str,
    flows: FlowRegistry = Depends(get_flow_registry)
):
    """Back to the form: the pending registration is dropped."""
    flow = _lookup_flow(flow_id, flows)
    step = flow.reset()
    flows.discard(flow_id)
    return step

# ============================================================================
# LOGIN & RECOVERY ROUTES
# ============================================================================

@router.post("/login", response_model=LoginResponse, summary="Clinician Login")
async def login_route(
    data: LoginRequest,
    request: Request,
    authenticator: SessionAuthenticator = Depends(get_authenticator),
    db: Session = Depends(get_db)
):
    """
    Clinician login endpoint. Email matching is case-insensitive.

    Returns:
        Identity and bearer token
    """
    email = normalize_email(data.email)
    try:
        identity = await authenticator.login(data.email, data.password)
    except AuthException as e:
        await create_audit_log(db, action="CLINICIAN_LOGIN_FAILED", request=request, details={"email": email, "error": e.error})
        raise

    await create_audit_log(db, action="CLINICIAN_LOGIN_SUCCESS", actor_id=identity.id, request=request, details={"email": email})
    return LoginResponse(access_token=issue_identity_token(identity), identity=identity)

@router.post("/forgot-password", response_model=RecoveryNotice, summary="Password Recovery")
async def forgot_password_route(
    data: ForgotPasswordRequest,
    request: Request,
    authenticator: SessionAuthenticator = Depends(get_authenticator),
    db: Session = Depends(get_db)
):
    """Password recovery stub. Confirms dispatch of instructions for known emails."""
    notice = await authenticator.forgot_password(data.email)
    await create_audit_log(db, action="FORGOT_PASSWORD_REQUESTED", request=request, details={"email": notice.email})
    return notice

@router.get("/me", response_model=AuthenticatedIdentity, summary="Current Identity")
async def me_route(identity: AuthenticatedIdentity = Depends(get_current_identity)):
    """Identity carried by the bearer token."""
    return identity
