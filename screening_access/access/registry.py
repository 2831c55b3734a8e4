"""
Access grant registries - access code -> grant mapping plus the screening
results linked to each code.

Recording a result is what consumes a grant: the grant is deactivated, its
used date stamped and its result counter incremented in the same call.
"""
import abc
import logging
from datetime import timedelta
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..core.clock import Clock, system_clock
from ..core.codes import generate_access_code, generate_identifier
from .models import AccessGrantRecord, ScreeningResultRecord
from .schemas import AccessGrant, ScreeningResult, ScreeningResultCreate

# Set up logging
logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 10

class AccessGrantRegistry(abc.ABC):
    """Interface of an access grant and screening result store."""

    def __init__(self, clock: Clock = system_clock):
        self.clock = clock

    # Grants ------------------------------------------------------------

    @abc.abstractmethod
    def find_by_code(self, code: str) -> Optional[AccessGrant]:
        """Exact-match lookup of a grant by its access code."""

    @abc.abstractmethod
    def add_grant(self, grant: AccessGrant) -> AccessGrant:
        """Store a new grant. Raises ValueError if the code is taken."""

    @abc.abstractmethod
    def all_grants(self) -> List[AccessGrant]:
        """Every grant, newest first."""

    def grants_for_clinician(self, clinician_id: str) -> List[AccessGrant]:
        return [grant for grant in self.all_grants() if grant.clinician_id == clinician_id]

    def issue_grant(self, clinician_id: str, patient_name: str, valid_days: Optional[int] = None) -> AccessGrant:
        """
        Create a fresh, active access code for a patient.

        Args:
            clinician_id: Issuing clinician
            patient_name: Patient the code is for
            valid_days: Days until expiry (default: settings.access_grant_valid_days)

        Returns:
            The stored AccessGrant
        """
        today = self.clock.today()
        days = valid_days or settings.access_grant_valid_days
        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_access_code()
            if self.find_by_code(code) is not None:
                continue
            grant = AccessGrant(
                id=generate_identifier("grant"),
                code=code,
                patient_name=patient_name.strip(),
                clinician_id=clinician_id,
                created_date=today,
                expiry_date=today + timedelta(days=days),
                is_active=True,
                test_results=0,
            )
            try:
                stored = self.add_grant(grant)
            except ValueError:
                continue
            logger.info(f"Access code issued by {clinician_id} for patient '{stored.patient_name}'")
            return stored
        raise RuntimeError("Could not generate a unique access code")

    # Results -----------------------------------------------------------

    @abc.abstractmethod
    def record_result(self, result: ScreeningResultCreate) -> ScreeningResult:
        """
        Store a finished screening and consume the grant it was taken under.

        The grant with the matching code is deactivated, its used date set
        if still empty, and its result counter incremented.
        """

    @abc.abstractmethod
    def all_results(self) -> List[ScreeningResult]:
        """Every result, most recent first."""

    def results_for_code(self, code: str) -> List[ScreeningResult]:
        return [result for result in self.all_results() if result.access_code == code]

    def results_for_clinician(self, clinician_id: str) -> List[ScreeningResult]:
        """Results whose access code was issued by ``clinician_id``."""
        codes = {grant.code for grant in self.grants_for_clinician(clinician_id)}
        return [result for result in self.all_results() if result.access_code in codes]

    def _new_result(self, result: ScreeningResultCreate) -> ScreeningResult:
        now = self.clock.now()
        return ScreeningResult(
            **result.model_dump(),
            id=generate_identifier("result"),
            date=now.date(),
            recorded_at=now,
        )


class InMemoryAccessGrantRegistry(AccessGrantRegistry):
    """Dictionary-backed registry. Lives as long as the process."""

    def __init__(self, clock: Clock = system_clock):
        super().__init__(clock)
        self._grants: Dict[str, AccessGrant] = {}
        self._results: List[ScreeningResult] = []

    def find_by_code(self, code: str) -> Optional[AccessGrant]:
        return self._grants.get(code)

    def add_grant(self, grant: AccessGrant) -> AccessGrant:
        if grant.code in self._grants:
            raise ValueError(f"Access code {grant.code} already exists")
        self._grants[grant.code] = grant
        return grant

    def all_grants(self) -> List[AccessGrant]:
        return sorted(self._grants.values(), key=lambda grant: grant.created_date, reverse=True)

    def record_result(self, result: ScreeningResultCreate) -> ScreeningResult:
        stored = self._new_result(result)
        self._results.insert(0, stored)

        grant = self._grants.get(stored.access_code)
        if grant is None:
            logger.warning(f"Result {stored.id} recorded for unknown access code")
        else:
            self._grants[grant.code] = grant.model_copy(update={
                "is_active": False,
                "used_date": grant.used_date or stored.date,
                "test_results": grant.test_results + 1,
            })
        logger.info(f"Screening result recorded: {stored.id} ({stored.test_type}, {stored.severity.value})")
        return stored

    def all_results(self) -> List[ScreeningResult]:
        return list(self._results)


class SqlAccessGrantRegistry(AccessGrantRegistry):
    """SQLAlchemy-backed registry, durable across restarts."""

    def __init__(self, db: Session, clock: Clock = system_clock):
        super().__init__(clock)
        self.db = db

    def find_by_code(self, code: str) -> Optional[AccessGrant]:
        row = self.db.query(AccessGrantRecord).filter(AccessGrantRecord.code == code).first()
        return AccessGrant.model_validate(row) if row else None

    def add_grant(self, grant: AccessGrant) -> AccessGrant:
        row = AccessGrantRecord(**grant.model_dump())
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ValueError(f"Access code {grant.code} already exists")
        self.db.refresh(row)
        return AccessGrant.model_validate(row)

    def all_grants(self) -> List[AccessGrant]:
        rows = self.db.query(AccessGrantRecord).order_by(AccessGrantRecord.created_date.desc()).all()
        return [AccessGrant.model_validate(row) for row in rows]

    def grants_for_clinician(self, clinician_id: str) -> List[AccessGrant]:
        rows = (
            self.db.query(AccessGrantRecord)
            .filter(AccessGrantRecord.clinician_id == clinician_id)
            .order_by(AccessGrantRecord.created_date.desc())
            .all()
        )
        return [AccessGrant.model_validate(row) for row in rows]

    def record_result(self, result: ScreeningResultCreate) -> ScreeningResult:
        stored = self._new_result(result)
        payload = stored.model_dump()
        payload["severity"] = stored.severity.value
        self.db.add(ScreeningResultRecord(**payload))

        grant = self.db.query(AccessGrantRecord).filter(AccessGrantRecord.code == stored.access_code).first()
        if grant is None:
            logger.warning(f"Result {stored.id} recorded for unknown access code")
        else:
            grant.is_active = False
            if grant.used_date is None:
                grant.used_date = stored.date
            grant.test_results = (grant.test_results or 0) + 1

        self.db.commit()
        logger.info(f"Screening result recorded: {stored.id} ({stored.test_type}, {stored.severity.value})")
        return stored

    def all_results(self) -> List[ScreeningResult]:
        rows = self.db.query(ScreeningResultRecord).order_by(ScreeningResultRecord.seq.desc()).all()
        return [ScreeningResult.model_validate(row) for row in rows]

    def results_for_code(self, code: str) -> List[ScreeningResult]:
        rows = (
            self.db.query(ScreeningResultRecord)
            .filter(ScreeningResultRecord.access_code == code)
            .order_by(ScreeningResultRecord.seq.desc())
            .all()
        )
        return [ScreeningResult.model_validate(row) for row in rows]
