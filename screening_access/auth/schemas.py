"""
Auth Schemas - Pydantic models for clinician accounts, the registration flow
and authenticated identities.
"""
import enum
from datetime import datetime
from typing import Optional, Dict
from pydantic import BaseModel, Field

class IdentityRole(str, enum.Enum):
    """Roles an authenticated identity can have."""
    CLINICIAN = "clinician"
    PATIENT = "patient"

class FlowState(str, enum.Enum):
    """Registration flow states."""
    FORM = "form"
    AWAITING_CODE = "awaiting_code"
    VERIFIED = "verified"

class ClinicianAccount(BaseModel):
    """
    Clinician Account - A committed clinician record

    Fields:
    - id: Opaque account identifier
    - email: Normalized email address
    - name: Display name
    - specialty: Medical specialty (optional)
    - clinic: Clinic or affiliation (optional)
    - password_hash: bcrypt hash, never the raw secret
    - registered_at: Registration timestamp
    - is_verified: Whether email verification was completed
    """
    id: str
    email: str
    name: str
    specialty: Optional[str] = None
    clinic: Optional[str] = None
    password_hash: str
    registered_at: datetime
    is_verified: bool = False

    class Config:
        """Configuration for Pydantic model to enable ORM mode"""
        from_attributes = True

class PendingVerification(BaseModel):
    """
    Pending Verification - An uncommitted registration awaiting its code

    Instances are immutable; a resend swaps in a new value.

    ``resent_at`` stays empty until the first resend; the resend cooldown
    runs from it, so the first resend is available right away.
    """
    account: ClinicianAccount
    code: str
    expires_at: datetime
    sent_at: datetime
    resent_at: Optional[datetime] = None

    class Config:
        frozen = True

class RegistrationInput(BaseModel):
    """
    Registration Input - Raw form values

    Fields are plain strings so that every field can be validated together
    by the flow instead of failing on the first bad one.
    """
    name: str = ""
    email: str = ""
    password: str = ""
    specialty: Optional[str] = None
    clinic: Optional[str] = None

class VerificationSubmit(BaseModel):
    """Verification code entered by the user."""
    code: str = ""

class LoginRequest(BaseModel):
    """Clinician login form."""
    email: str = ""
    password: str = ""

class ForgotPasswordRequest(BaseModel):
    """Password recovery form."""
    email: str = ""

class RecoveryNotice(BaseModel):
    """Result of the password recovery stub."""
    email: str
    message: str = "Password recovery instructions have been sent to your email"

class EmailPreview(BaseModel):
    """Outgoing verification email, shown when delivery fails."""
    to: str
    subject: str
    body: str

class DeliveryResult(BaseModel):
    """Outcome reported by an email transport."""
    success: bool
    error: Optional[str] = None

class FlowStep(BaseModel):
    """
    Flow Step - What the presentation layer needs after each flow action

    Fields:
    - state: Current flow state
    - message: Human-readable status line
    - errors: Field-keyed messages (empty on success)
    - email: Address of the pending registration, if any
    - expires_at: Expiry of the current code, if any
    - cooldown_seconds: Seconds until resend is allowed again
    - resent: Whether a resend call actually sent a new code
    - delivery: Outcome of the last email dispatch
    - preview: Fallback view of the outgoing email when delivery failed
    - stale: True when the action completed after the flow had moved on
    """
    state: FlowState
    message: Optional[str] = None
    errors: Dict[str, str] = Field(default_factory=dict)
    email: Optional[str] = None
    expires_at: Optional[datetime] = None
    cooldown_seconds: int = 0
    resent: bool = False
    delivery: Optional[DeliveryResult] = None
    preview: Optional[EmailPreview] = None
    stale: bool = False

class RegistrationResponse(BaseModel):
    """Response to starting a registration flow over HTTP."""
    flow_id: str
    step: FlowStep

class AuthenticatedIdentity(BaseModel):
    """
    Authenticated Identity - Session-scoped, never persisted

    Fields:
    - role: clinician or patient
    - name: Display name
    - id: Clinician account id or generated patient id
    - access_code: Redeemed access code (patients only)
    """
    role: IdentityRole
    name: str
    id: str
    access_code: Optional[str] = None

class LoginResponse(BaseModel):
    """
    Login Response Schema - Returned after successful authentication

    Fields:
    - access_token: Signed identity token
    - token_type: Type of token (always "bearer")
    - identity: The authenticated identity
    """
    access_token: str
    token_type: str = "bearer"
    identity: AuthenticatedIdentity
