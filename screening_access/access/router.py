"""
Access routes - patient access-code redemption, grant issuance and results.
"""
import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from ..auth.dependencies import get_authenticator, get_grant_registry, require_clinician, require_patient
from ..auth.exceptions import AuthException, InvalidAccessCodeException
from ..auth.schemas import AuthenticatedIdentity, LoginResponse
from ..auth.service import SessionAuthenticator, issue_identity_token
from ..core.audit_service import create_audit_log
from ..core.pagination import PageParams, PageResponse, paginate
from ..database import get_db
from .registry import AccessGrantRegistry
from .schemas import AccessGrant, AccessGrantCreate, RedeemRequest, ScreeningResult, ScreeningResultCreate, ScreeningSubmission

# Set up logging
logger = logging.getLogger(__name__)

# Create API router
router = APIRouter(prefix="/api/v1/access", tags=["Access"])

@router.post("/redeem", response_model=LoginResponse, summary="Patient Access Code Entry")
async def redeem_route(
    data: RedeemRequest,
    request: Request,
    authenticator: SessionAuthenticator = Depends(get_authenticator),
    db: Session = Depends(get_db)
):
    """
    Admit a patient with the access code issued by their clinician.

    Unknown, used and expired codes all produce the same error.
    """
    try:
        identity = await authenticator.redeem_access_code(data.patient_name, data.access_code)
    except AuthException as e:
        await create_audit_log(db, action="ACCESS_CODE_REJECTED", request=request, details={"error": e.error})
        raise

    await create_audit_log(db, action="ACCESS_CODE_REDEEMED", actor_id=identity.id, request=request, details={"access_code": identity.access_code})
    return LoginResponse(access_token=issue_identity_token(identity), identity=identity)

@router.post("/results", status_code=status.HTTP_201_CREATED, response_model=ScreeningResult, summary="Record Screening Result")
async def record_result_route(
    data: ScreeningSubmission,
    request: Request,
    identity: AuthenticatedIdentity = Depends(require_patient),
    grants: AccessGrantRegistry = Depends(get_grant_registry),
    db: Session = Depends(get_db)
):
    """
    Record the result of the patient's screening session.

    This consumes the access code the patient entered with. A code that
    expired after the patient entered still accepts its one result.
    """
    grant = grants.find_by_code(identity.access_code or "")
    if grant is None or not grant.accepts_result():
        raise InvalidAccessCodeException()

    result = grants.record_result(ScreeningResultCreate(
        patient_name=identity.name,
        patient_id=identity.id,
        access_code=grant.code,
        **data.model_dump()
    ))
    await create_audit_log(db, action="SCREENING_RESULT_RECORDED", actor_id=identity.id, request=request, details={"result_id": result.id, "access_code": grant.code})
    return result

@router.post("/grants", status_code=status.HTTP_201_CREATED, response_model=AccessGrant, summary="Issue Access Code")
async def issue_grant_route(
    data: AccessGrantCreate,
    request: Request,
    identity: AuthenticatedIdentity = Depends(require_clinician),
    grants: AccessGrantRegistry = Depends(get_grant_registry),
    db: Session = Depends(get_db)
):
    """Issue a new single-use access code for a patient."""
    grant = grants.issue_grant(identity.id, data.patient_name, data.valid_days)
    await create_audit_log(db, action="ACCESS_CODE_ISSUED", actor_id=identity.id, request=request, details={"grant_id": grant.id})
    return grant

@router.get("/grants", response_model=PageResponse[AccessGrant], summary="List Issued Access Codes")
async def list_grants_route(
    page_params: PageParams = Depends(),
    identity: AuthenticatedIdentity = Depends(require_clinician),
    grants: AccessGrantRegistry = Depends(get_grant_registry)
):
    """Access codes issued by the signed-in clinician, newest first."""
    return paginate(grants.grants_for_clinician(identity.id), page_params)

@router.get("/results", response_model=PageResponse[ScreeningResult], summary="List Screening Results")
async def list_results_route(
    page_params: PageParams = Depends(),
    identity: AuthenticatedIdentity = Depends(require_clinician),
    grants: AccessGrantRegistry = Depends(get_grant_registry)
):
    """Results taken under the signed-in clinician's codes, most recent first."""
    return paginate(grants.results_for_clinician(identity.id), page_params)
