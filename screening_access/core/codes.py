"""
Generators for emailed verification codes and patient access codes.
"""
import secrets
import string
import uuid

ACCESS_CODE_ALPHABET = string.ascii_uppercase + string.digits
VERIFICATION_CODE_LENGTH = 6

def generate_verification_code() -> str:
    """
    Generates a 6-digit numeric verification code.

    Returns:
        A string in the range 100000-999999 (never starts with zero)
    """
    return str(100000 + secrets.randbelow(900000))

def generate_access_code(group_length: int = 4, groups: int = 2) -> str:
    """
    Generates a human-typeable access code such as ``PSY9-3N6R``.

    Args:
        group_length: Characters per group (default: 4)
        groups: Number of dash-separated groups (default: 2)

    Returns:
        Upper-case letters and digits separated by dashes
    """
    return "-".join(
        "".join(secrets.choice(ACCESS_CODE_ALPHABET) for _ in range(group_length))
        for _ in range(groups)
    )

def generate_identifier(prefix: str) -> str:
    """Opaque record identifier, e.g. ``doc_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex}"
