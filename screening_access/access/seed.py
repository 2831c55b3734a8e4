"""
Demo access codes loaded into an empty registry on startup.
"""
import logging
from datetime import date, timedelta
from typing import List, Optional

from ..config import settings
from .registry import AccessGrantRegistry
from .schemas import AccessGrant

# Set up logging
logger = logging.getLogger(__name__)

def demo_grants(today: date, clinician_id: Optional[str] = None) -> List[AccessGrant]:
    """
    The three codes shipped with the demo: two already used, one active.

    Dates are relative to ``today`` so the active code stays redeemable for
    ``access_grant_valid_days`` after seeding.
    """
    valid = timedelta(days=settings.access_grant_valid_days)
    yesterday = today - timedelta(days=1)
    two_days_ago = today - timedelta(days=2)
    return [
        AccessGrant(
            id="1",
            code="MED7-4K9P",
            patient_name="Anna Petrova",
            clinician_id=clinician_id,
            created_date=yesterday,
            expiry_date=yesterday + valid,
            is_active=False,
            used_date=yesterday,
            test_results=0,
        ),
        AccessGrant(
            id="2",
            code="DOC2-8H5L",
            patient_name="Mikhail Korotkov",
            clinician_id=clinician_id,
            created_date=two_days_ago,
            expiry_date=two_days_ago + valid,
            is_active=False,
            used_date=two_days_ago,
            test_results=0,
        ),
        AccessGrant(
            id="3",
            code="PSY9-3N6R",
            patient_name="Elena Volkova",
            clinician_id=clinician_id,
            created_date=today,
            expiry_date=today + valid,
            is_active=True,
            test_results=0,
        ),
    ]

def seed_demo_grants(registry: AccessGrantRegistry, clinician_id: Optional[str] = None) -> int:
    """
    Load the demo codes if the registry holds no grants yet.

    Returns:
        Number of grants added
    """
    if registry.all_grants():
        return 0
    grants = demo_grants(registry.clock.today(), clinician_id)
    for grant in grants:
        registry.add_grant(grant)
    logger.info(f"Seeded {len(grants)} demo access codes")
    return len(grants)
