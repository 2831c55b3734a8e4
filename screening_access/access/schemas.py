"""
Access Schemas - Pydantic models for access grants and screening results.
"""
import enum
import datetime as dt
from typing import List, Optional
from pydantic import BaseModel, Field

class Severity(str, enum.Enum):
    """Severity classification of a screening score."""
    NORMAL = "normal"
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"

class AccessGrant(BaseModel):
    """
    Access Grant - A patient access code issued by a clinician

    A grant is redeemable while ``is_active`` is true and today is not
    after ``expiry_date``.
    """
    id: str
    code: str
    patient_name: str
    clinician_id: Optional[str] = None
    created_date: dt.date
    expiry_date: dt.date
    is_active: bool = True
    used_date: Optional[dt.date] = None
    test_results: int = 0

    class Config:
        from_attributes = True

    def is_redeemable(self, today: dt.date) -> bool:
        return self.accepts_result() and today <= self.expiry_date

    def accepts_result(self) -> bool:
        """A patient who entered with this code may still submit; expiry is only checked on entry."""
        return self.is_active and self.test_results == 0

class AccessGrantCreate(BaseModel):
    """
    Access Grant Creation Schema - Used when a clinician issues a code

    Fields:
    - patient_name: Patient the code is for
    - valid_days: Days until the code expires (default from settings)
    """
    patient_name: str = Field(..., min_length=1)
    valid_days: Optional[int] = Field(None, ge=1, le=90)

class ScreeningResultCreate(BaseModel):
    """
    Screening Result Creation Schema - A finished screening session

    Identity and date are assigned by the registry.
    """
    patient_name: str
    patient_id: str
    access_code: str
    test_type: str
    score: float
    severity: Severity
    ai_analysis: str = ""
    recommendations: List[str] = Field(default_factory=list)

class ScreeningSubmission(BaseModel):
    """Result payload posted by an authenticated patient; identity comes from the token."""
    test_type: str
    score: float
    severity: Severity
    ai_analysis: str = ""
    recommendations: List[str] = Field(default_factory=list)

class ScreeningResult(ScreeningResultCreate):
    """
    Screening Result - Immutable record of a completed screening

    Fields (in addition to the creation fields):
    - id: Opaque identifier
    - date: Day the result was recorded
    - recorded_at: Exact recording time
    """
    id: str
    date: dt.date
    recorded_at: dt.datetime

    class Config:
        from_attributes = True
        frozen = True

class RedeemRequest(BaseModel):
    """Patient entry form."""
    patient_name: str = ""
    access_code: str = ""
