"""
Clinician Model - Committed, email-verified clinician accounts.

Pending registrations are never stored here; they live only inside a
verification flow until the emailed code is confirmed.
"""
from sqlalchemy import Column, String, Boolean, DateTime
from ..database import Base

class Clinician(Base):
    """
    Clinician Model - Stores clinician accounts

    Fields:
    - id: Opaque account identifier
    - email: Normalized (lower-cased) email, unique
    - name: Display name
    - specialty: Medical specialty (optional)
    - clinic: Clinic or affiliation (optional)
    - password_hash: bcrypt hash of the credential secret
    - registered_at: When the registration was started
    - is_verified: Whether the email address was confirmed
    """
    __tablename__ = "clinicians"

    id = Column(String, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    specialty = Column(String, nullable=True)
    clinic = Column(String, nullable=True)
    password_hash = Column(String, nullable=False)
    registered_at = Column(DateTime(timezone=True), nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)

    def __repr__(self):
        """String representation of the Clinician model"""
        return f"<Clinician(id={self.id}, email='{self.email}', verified={self.is_verified})>"
