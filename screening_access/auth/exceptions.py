"""
Authentication-specific exceptions.

Every condition here is expected and user-facing. Each exception knows which
form field it belongs to so the caller can show all messages at once.
"""
from fastapi import status
from typing import Dict, Optional

from ..exceptions import AppException

class AuthException(AppException):
    """Base class for authentication exceptions."""
    field = "form"

    def __init__(self, status_code: int, detail: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(status_code=status_code, detail=detail, errors=errors or {self.field: detail})

class FieldValidationException(AuthException):
    """Raised with every invalid field of a submission, not just the first."""
    error = "validation_error"

    def __init__(self, errors: Dict[str, str], detail: str = "Please correct the highlighted fields"):
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail, errors=dict(errors))

class EmailAlreadyExistsException(AuthException):
    """Exception raised when the normalized email is already registered."""
    error = "duplicate_email"
    field = "email"

    def __init__(self, detail: str = "This email is already registered", errors: Optional[Dict[str, str]] = None):
        if errors is not None:
            errors = {**errors, self.field: detail}
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail, errors=errors)

class VerificationCodeExpiredException(AuthException):
    """Exception raised when the emailed code is past its expiry."""
    error = "expired"
    field = "code"

    def __init__(self, detail: str = "The verification code has expired. Please request a new code."):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class VerificationCodeInvalidException(AuthException):
    """Exception raised when verification code does not match."""
    error = "mismatch"
    field = "code"

    def __init__(self, detail: str = "Invalid verification code"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class VerificationNotStartedException(AuthException):
    """Exception raised when a code is submitted with no registration in progress."""
    error = "no_pending_verification"
    field = "code"

    def __init__(self, detail: str = "No registration is awaiting verification. Please register again."):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)

class AccountNotFoundException(AuthException):
    """Exception raised when no clinician account matches the email."""
    error = "not_found"
    field = "email"

    def __init__(self, detail: str = "No account is registered with this email"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

class AccountNotVerifiedException(AuthException):
    """Exception raised when the account has not completed email verification."""
    error = "unverified"
    field = "login"

    def __init__(self, detail: str = "Account is not verified. Please complete email verification before signing in."):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

class InvalidCredentialsException(AuthException):
    """Exception raised when credentials are invalid."""
    error = "invalid_credential"
    field = "login"

    def __init__(self, detail: str = "Invalid email or password"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)

class InvalidAccessCodeException(AuthException):
    """
    Exception raised for an unknown, used or expired access code.

    All three causes share one message.
    """
    error = "invalid_or_expired_code"
    field = "access_code"

    def __init__(self, detail: str = "Invalid or expired access code"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class InvalidTokenException(AuthException):
    """Exception raised when a bearer token is missing or invalid."""
    error = "invalid_token"
    field = "token"

    def __init__(self, detail: str = "Invalid or missing token"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)

class RoleDeniedException(AuthException):
    """Exception raised when identity doesn't have required role."""
    error = "role_denied"

    def __init__(self, required_role: str, identity_role: str):
        detail = f"Access denied. Required role: {required_role}. Your role: {identity_role}"
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
