"""
Clinician registration with email verification.

A VerificationFlow walks one registration session through
``FORM -> AWAITING_CODE -> VERIFIED``. The account being registered stays
inside the flow as a PendingVerification until the emailed code is confirmed;
only then is it committed to the CredentialStore.

Every state change bumps ``generation``. Operations that suspend (email
dispatch, simulated latency) remember the generation they started under and
drop their result if the flow has moved on in the meantime, e.g. the user
went back to the form while a verification was still in flight.
"""
import asyncio
import logging
import math
import re
import secrets
import uuid
from datetime import datetime, timedelta
from typing import AsyncIterator, Dict, Optional, Tuple

from ..config import settings
from ..core.clock import Clock, system_clock
from ..core.codes import VERIFICATION_CODE_LENGTH, generate_identifier, generate_verification_code
from ..core.security import hash_password
from .exceptions import (
    AuthException,
    EmailAlreadyExistsException,
    FieldValidationException,
    VerificationCodeExpiredException,
    VerificationCodeInvalidException,
    VerificationNotStartedException,
)
from .schemas import (
    ClinicianAccount,
    DeliveryResult,
    EmailPreview,
    FlowState,
    FlowStep,
    PendingVerification,
    RegistrationInput,
)
from .store import CredentialStore, normalize_email
from .utils import EmailTransport, build_verification_email

# Set up logging
logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
CODE_PATTERN = re.compile(r"[0-9]+")
DUPLICATE_EMAIL_MESSAGE = "This email is already registered"

def validate_registration(data: RegistrationInput, store: CredentialStore) -> Dict[str, str]:
    """
    Check every registration field and collect all problems.

    Args:
        data: Raw form values
        store: Committed accounts, used for the duplicate email check

    Returns:
        Field-keyed error messages; empty when the input is acceptable
    """
    errors: Dict[str, str] = {}

    name = (data.name or "").strip()
    if not name:
        errors["name"] = "Enter your full name"
    elif len(name) < 2:
        errors["name"] = "Name is too short"

    email = (data.email or "").strip()
    if not email:
        errors["email"] = "Enter your email address"
    elif not EMAIL_PATTERN.match(email):
        errors["email"] = "Enter a valid email address"
    elif store.exists(email):
        errors["email"] = DUPLICATE_EMAIL_MESSAGE

    password = data.password or ""
    if not password:
        errors["password"] = "Enter a password"
    elif len(password) < 6:
        errors["password"] = "Password must be at least 6 characters"
    elif not (re.search(r"[a-zA-Z]", password) and re.search(r"\d", password)):
        errors["password"] = "Password must contain both letters and digits"

    return errors

def validate_verification_code(code: str) -> Dict[str, str]:
    """Format check for a submitted verification code."""
    if not (code or "").strip():
        return {"code": "Enter the verification code"}
    if len(code) != VERIFICATION_CODE_LENGTH:
        return {"code": f"The code must contain {VERIFICATION_CODE_LENGTH} digits"}
    if not CODE_PATTERN.fullmatch(code):
        return {"code": "The code must contain digits only"}
    return {}


class VerificationFlow:
    """
    One clinician registration session.

    Args:
        store: Default store for validation and commits; operations called
            with their own ``store`` use that one instead
        transport: Email transport for verification codes
        clock: Time source for expiry and cooldown
        code_ttl: Lifetime of each verification code
        resend_cooldown: Minimum delay between two resends
        latency: Seconds to suspend before applying registration/verification
    """

    def __init__(
        self,
        store: Optional[CredentialStore],
        transport: EmailTransport,
        clock: Clock = system_clock,
        code_ttl: Optional[timedelta] = None,
        resend_cooldown: Optional[timedelta] = None,
        latency: Optional[float] = None,
    ):
        self.store = store
        self.transport = transport
        self.clock = clock
        self.code_ttl = code_ttl or timedelta(minutes=settings.verification_code_ttl_minutes)
        self.resend_cooldown = resend_cooldown or timedelta(seconds=settings.resend_cooldown_seconds)
        self.latency = settings.simulated_latency_seconds if latency is None else latency

        self.state = FlowState.FORM
        self.generation = 0
        self.pending: Optional[PendingVerification] = None
        self.account: Optional[ClinicianAccount] = None
        self.last_delivery: Optional[DeliveryResult] = None
        self.preview: Optional[EmailPreview] = None

    def _store_for(self, store: Optional[CredentialStore]) -> CredentialStore:
        """The store passed to an operation, else the one given at construction."""
        if store is not None:
            return store
        if self.store is None:
            raise RuntimeError("VerificationFlow has no credential store")
        return self.store

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def begin_registration(self, data: RegistrationInput, store: Optional[CredentialStore] = None) -> FlowStep:
        """
        Validate the form, create the pending registration and email the code.

        ``store`` overrides the flow's own store for this call only, so that a
        long-lived flow can be driven with a request-scoped store.

        Raises:
            FieldValidationException: With every invalid field
            EmailAlreadyExistsException: If the email is already registered
        """
        errors = validate_registration(data, self._store_for(store))
        if errors:
            if errors.get("email") == DUPLICATE_EMAIL_MESSAGE:
                logger.warning(f"Registration rejected: email {normalize_email(data.email)} already registered")
                raise EmailAlreadyExistsException(DUPLICATE_EMAIL_MESSAGE, errors=errors)
            logger.info(f"Registration rejected with field errors: {sorted(errors)}")
            raise FieldValidationException(errors)

        token = self._advance()
        password_hash = await asyncio.to_thread(hash_password, data.password)
        await self._pause()
        if token != self.generation:
            logger.info("Registration completed after the flow was reset; ignoring")
            return self.snapshot(stale=True)

        now = self.clock.now()
        account = ClinicianAccount(
            id=generate_identifier("doc"),
            email=normalize_email(data.email),
            name=data.name.strip(),
            specialty=(data.specialty or "").strip() or None,
            clinic=(data.clinic or "").strip() or None,
            password_hash=password_hash,
            registered_at=now,
            is_verified=False,
        )
        self.pending = PendingVerification(
            account=account,
            code=generate_verification_code(),
            expires_at=now + self.code_ttl,
            sent_at=now,
        )
        self.account = None
        self.state = FlowState.AWAITING_CODE
        logger.info(f"Registration pending verification for {account.email}")

        await self._dispatch(self.pending, is_resend=False, token=token)
        return self.snapshot(message=f"A verification code has been sent to {account.email}")

    async def resend(self) -> FlowStep:
        """
        Issue and send a new code, unless nothing is pending or the cooldown
        since the previous resend has not elapsed (then this is a no-op).
        The first resend after registering is always allowed.
        """
        if self.pending is None or self.state != FlowState.AWAITING_CODE:
            logger.info("Resend ignored: no registration awaiting verification")
            return self.snapshot()

        remaining = self.cooldown_remaining()
        if remaining > 0:
            logger.info(f"Resend ignored: cooldown active for {remaining}s")
            return self.snapshot(message=f"You can request a new code in {remaining} seconds")

        token = self._advance()
        now = self.clock.now()
        self.pending = self.pending.model_copy(update={
            "code": generate_verification_code(),
            "expires_at": now + self.code_ttl,
            "sent_at": now,
            "resent_at": now,
        })
        logger.info(f"Verification code reissued for {self.pending.account.email}")

        await self._dispatch(self.pending, is_resend=True, token=token)
        return self.snapshot(message="A new verification code has been sent to your email", resent=True)

    async def verify(self, code: str, store: Optional[CredentialStore] = None) -> FlowStep:
        """
        Confirm the emailed code and commit the account to ``store`` (default:
        the flow's own store).

        Raises:
            FieldValidationException: If the code is not exactly 6 digits
            VerificationNotStartedException: If nothing awaits verification
            VerificationCodeExpiredException: If the code has expired
            VerificationCodeInvalidException: If the code does not match
            EmailAlreadyExistsException: If the email was committed meanwhile
        """
        code = code or ""
        errors = validate_verification_code(code)
        if errors:
            raise FieldValidationException(errors)
        if self.pending is None or self.state != FlowState.AWAITING_CODE:
            raise VerificationNotStartedException()

        token = self.generation
        pending = self.pending
        await self._pause()
        if token != self.generation:
            logger.info("Verification completed after the flow changed; ignoring")
            return self.snapshot(stale=True)

        if self.clock.now() > pending.expires_at:
            logger.warning(f"Verification failed: code expired for {pending.account.email}")
            raise VerificationCodeExpiredException()

        if not secrets.compare_digest(code, pending.code):
            logger.warning(f"Verification failed: invalid code for {pending.account.email}")
            raise VerificationCodeInvalidException()

        verified = pending.account.model_copy(update={"is_verified": True})
        try:
            committed = self._store_for(store).insert(verified)
        except EmailAlreadyExistsException:
            # Another registration for the same email was verified first.
            logger.warning(f"Verification rejected: {verified.email} was registered by another session")
            self.reset()
            raise

        self._advance()
        self.pending = None
        self.preview = None
        self.account = committed
        self.state = FlowState.VERIFIED
        logger.info(f"Email verified: {committed.email}")
        return self.snapshot(message="Email verified. You can now sign in.")

    def reset(self) -> FlowStep:
        """Abandon the registration and return to the empty form."""
        self._advance()
        self.state = FlowState.FORM
        self.pending = None
        self.account = None
        self.last_delivery = None
        self.preview = None
        return self.snapshot()

    async def handle(self, action: str, **payload) -> FlowStep:
        """
        Run one flow action and report errors in the returned step instead
        of raising.

        ``action`` is one of ``register``, ``resend``, ``verify`` or ``reset``.
        """
        try:
            if action == "register":
                return await self.begin_registration(RegistrationInput(**payload))
            if action == "resend":
                return await self.resend()
            if action == "verify":
                return await self.verify(payload.get("code", ""))
            if action == "reset":
                return self.reset()
        except AuthException as exc:
            step = self.snapshot(message=exc.detail)
            step.errors = dict(exc.errors)
            return step
        raise ValueError(f"Unknown flow action: {action}")

    # ------------------------------------------------------------------
    # Cooldown
    # ------------------------------------------------------------------

    def cooldown_remaining(self) -> int:
        """Whole seconds until ``resend`` is allowed again."""
        if self.pending is None or self.pending.resent_at is None:
            return 0
        left = (self.pending.resent_at + self.resend_cooldown - self.clock.now()).total_seconds()
        return max(0, math.ceil(left))

    async def cooldown_ticks(self, interval: float = 1.0) -> AsyncIterator[int]:
        """
        Per-second countdown of the resend cooldown.

        Yields strictly decreasing values ending with 0. Stops early, without
        the final 0, once the flow is reset or a new code is sent.
        """
        token = self.generation
        remaining = self.cooldown_remaining()
        while remaining > 0:
            yield remaining
            await asyncio.sleep(interval)
            if token != self.generation:
                return
            remaining = min(remaining - 1, self.cooldown_remaining())
        yield 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def snapshot(self, message: Optional[str] = None, resent: bool = False, stale: bool = False) -> FlowStep:
        """Current state as seen by the presentation layer."""
        if self.pending is not None:
            email: Optional[str] = self.pending.account.email
            expires_at: Optional[datetime] = self.pending.expires_at
        else:
            email = self.account.email if self.account else None
            expires_at = None
        return FlowStep(
            state=self.state,
            message=message,
            email=email,
            expires_at=expires_at,
            cooldown_seconds=self.cooldown_remaining(),
            resent=resent,
            delivery=self.last_delivery,
            preview=self.preview,
            stale=stale,
        )

    def _advance(self) -> int:
        self.generation += 1
        return self.generation

    async def _pause(self) -> None:
        if self.latency > 0:
            await asyncio.sleep(self.latency)

    async def _dispatch(self, pending: PendingVerification, is_resend: bool, token: int) -> DeliveryResult:
        """Send the code; a failed or raising transport only switches on the preview."""
        try:
            result = await self.transport.send_verification_email(pending, is_resend)
        except Exception as e:
            logger.error(f"Email transport raised while sending to {pending.account.email}: {str(e)}")
            result = DeliveryResult(success=False, error=str(e))

        if token != self.generation:
            logger.info("Delivery outcome arrived for a superseded code; ignoring")
            return result

        self.last_delivery = result
        if result.success:
            logger.info(f"Verification email sent to {pending.account.email}")
            self.preview = None
        else:
            logger.warning(
                f"Verification email to {pending.account.email} not delivered ({result.error}); "
                f"showing preview instead. Code: {pending.code}"
            )
            self.preview = build_verification_email(pending, is_resend)
        return result


class FlowRegistry:
    """
    In-process registry of registration flows keyed by an opaque flow id.

    Flows are never persisted; abandoned ones are pruned after ``max_age``.
    """

    def __init__(self, transport: EmailTransport, clock: Clock = system_clock, max_age: timedelta = timedelta(hours=1)):
        self.transport = transport
        self.clock = clock
        self.max_age = max_age
        self._flows: Dict[str, VerificationFlow] = {}
        self._created: Dict[str, datetime] = {}

    def create(self) -> Tuple[str, VerificationFlow]:
        """
        Start a flow without a store of its own; callers pass their
        request-scoped store to each operation.
        """
        self.prune()
        flow_id = uuid.uuid4().hex
        flow = VerificationFlow(store=None, transport=self.transport, clock=self.clock)
        self._flows[flow_id] = flow
        self._created[flow_id] = self.clock.now()
        return flow_id, flow

    def get(self, flow_id: str) -> Optional[VerificationFlow]:
        return self._flows.get(flow_id)

    def discard(self, flow_id: str) -> None:
        flow = self._flows.pop(flow_id, None)
        self._created.pop(flow_id, None)
        if flow is not None:
            flow.reset()

    def prune(self) -> int:
        cutoff = self.clock.now() - self.max_age
        stale = [flow_id for flow_id, created in self._created.items() if created < cutoff]
        for flow_id in stale:
            self.discard(flow_id)
        if stale:
            logger.info(f"Pruned {len(stale)} abandoned registration flow(s)")
        return len(stale)

    def __len__(self) -> int:
        return len(self._flows)
