"""
Credential stores - durable mapping of committed clinician accounts keyed by
normalized email.

Two interchangeable implementations share the CredentialStore interface:
an in-memory one for tests and demos, and a SQLAlchemy-backed one.
"""
import abc
import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .exceptions import EmailAlreadyExistsException
from .models import Clinician
from .schemas import ClinicianAccount

# Set up logging
logger = logging.getLogger(__name__)

def normalize_email(email: str) -> str:
    """Case-insensitive key used for every email comparison and for storage."""
    return (email or "").strip().lower()

class CredentialStore(abc.ABC):
    """Interface of a clinician account store."""

    @abc.abstractmethod
    def find_by_email(self, email: str) -> Optional[ClinicianAccount]:
        """Return the account for ``email`` (any casing) or None."""

    @abc.abstractmethod
    def get(self, account_id: str) -> Optional[ClinicianAccount]:
        """Return the account with the given id or None."""

    @abc.abstractmethod
    def insert(self, account: ClinicianAccount) -> ClinicianAccount:
        """
        Commit a new account.

        Raises:
            EmailAlreadyExistsException: If the normalized email is present
        """

    @abc.abstractmethod
    def all(self) -> List[ClinicianAccount]:
        """Every committed account, in registration order."""

    def exists(self, email: str) -> bool:
        return self.find_by_email(email) is not None


class InMemoryCredentialStore(CredentialStore):
    """Dictionary-backed store. Lives as long as the process."""

    def __init__(self):
        self._accounts: Dict[str, ClinicianAccount] = {}

    def find_by_email(self, email: str) -> Optional[ClinicianAccount]:
        return self._accounts.get(normalize_email(email))

    def get(self, account_id: str) -> Optional[ClinicianAccount]:
        for account in self._accounts.values():
            if account.id == account_id:
                return account
        return None

    def insert(self, account: ClinicianAccount) -> ClinicianAccount:
        key = normalize_email(account.email)
        if key in self._accounts:
            logger.warning(f"Insert rejected: email {key} already registered")
            raise EmailAlreadyExistsException()
        stored = account.model_copy(update={"email": key})
        self._accounts[key] = stored
        logger.info(f"Clinician account committed: {stored.id}")
        return stored

    def all(self) -> List[ClinicianAccount]:
        return list(self._accounts.values())


class SqlCredentialStore(CredentialStore):
    """
    SQLAlchemy-backed store, durable across restarts.

    Single writer, last write wins. The unique index on ``clinicians.email``
    backs up the duplicate check in ``insert``.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_by_email(self, email: str) -> Optional[ClinicianAccount]:
        row = self.db.query(Clinician).filter(Clinician.email == normalize_email(email)).first()
        return ClinicianAccount.model_validate(row) if row else None

    def get(self, account_id: str) -> Optional[ClinicianAccount]:
        row = self.db.query(Clinician).filter(Clinician.id == account_id).first()
        return ClinicianAccount.model_validate(row) if row else None

    def insert(self, account: ClinicianAccount) -> ClinicianAccount:
        key = normalize_email(account.email)
        if self.find_by_email(key):
            logger.warning(f"Insert rejected: email {key} already registered")
            raise EmailAlreadyExistsException()

        row = Clinician(
            id=account.id,
            email=key,
            name=account.name,
            specialty=account.specialty,
            clinic=account.clinic,
            password_hash=account.password_hash,
            registered_at=account.registered_at,
            is_verified=account.is_verified
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"Insert rejected by unique index: email {key}")
            raise EmailAlreadyExistsException()
        self.db.refresh(row)
        logger.info(f"Clinician account committed: {row.id}")
        return ClinicianAccount.model_validate(row)

    def all(self) -> List[ClinicianAccount]:
        rows = self.db.query(Clinician).order_by(Clinician.registered_at).all()
        return [ClinicianAccount.model_validate(row) for row in rows]
