"""
Access grant and screening result models.

A clinician issues an AccessGrant to one patient; the screening results the
patient produces are linked to the grant by its code.
"""
from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, Float, ForeignKey, JSON
from ..database import Base

class AccessGrantRecord(Base):
    """
    Access Grant Model - single-use, time-limited patient access codes

    Fields:
    - id: Opaque identifier
    - code: Human-typed access code (e.g. PSY9-3N6R), unique
    - patient_name: Patient the code was issued to
    - clinician_id: Issuing clinician (null only for seeded demo codes)
    - created_date / expiry_date: Validity window, expiry inclusive
    - is_active: False once a result has been recorded
    - used_date: Date of the first recorded result
    - test_results: Number of results linked to the code
    """
    __tablename__ = "access_grants"

    id = Column(String, primary_key=True, index=True)
    code = Column(String, unique=True, index=True, nullable=False)
    patient_name = Column(String, nullable=False)
    clinician_id = Column(String, ForeignKey("clinicians.id", ondelete="SET NULL"), nullable=True, index=True)
    created_date = Column(Date, nullable=False)
    expiry_date = Column(Date, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    used_date = Column(Date, nullable=True)
    test_results = Column(Integer, default=0, nullable=False)

    def __repr__(self):
        return f"<AccessGrantRecord(code='{self.code}', active={self.is_active}, results={self.test_results})>"


class ScreeningResultRecord(Base):
    """
    Screening Result Model - immutable outcome of one screening session

    ``seq`` gives the insertion order used for most-recent-first listings.
    Results are kept when their grant expires or is removed.
    """
    __tablename__ = "screening_results"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, unique=True, index=True, nullable=False)
    patient_name = Column(String, nullable=False)
    patient_id = Column(String, nullable=False)
    access_code = Column(String, index=True, nullable=False)
    test_type = Column(String, nullable=False)
    score = Column(Float, nullable=False)
    severity = Column(String, nullable=False)
    ai_analysis = Column(String, nullable=False, default="")
    recommendations = Column(JSON, nullable=False, default=list)
    date = Column(Date, nullable=False)
    recorded_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<ScreeningResultRecord(id={self.id}, code='{self.access_code}', severity='{self.severity}')>"
