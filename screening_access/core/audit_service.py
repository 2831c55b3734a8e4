from sqlalchemy.orm import Session
from fastapi import Request
from typing import Optional, Dict, Any, List

from .audit_models import AuditLog

async def create_audit_log(
    db: Session,
    action: str,
    actor_id: Optional[str] = None,
    request: Optional[Request] = None,
    details: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Creates an audit log entry.

    Args:
        db: The database session.
        action: A string describing the action performed (e.g. 'CLINICIAN_LOGIN_SUCCESS', 'ACCESS_CODE_REDEEMED').
        actor_id: The identity that performed the action (if known).
        request: The FastAPI request object to extract IP address (if available).
        details: A dictionary containing additional context. Never put secrets or codes here.

    Returns:
        The created AuditLog object.
    """
    ip_address = None
    if request and request.client:
        ip_address = request.client.host

    audit_entry = AuditLog(
        actor_id=actor_id,
        action=action,
        ip_address=ip_address,
        details=details
    )
    db.add(audit_entry)
    db.commit()
    db.refresh(audit_entry)
    return audit_entry

def list_audit_logs(db: Session, action: Optional[str] = None, limit: int = 100) -> List[AuditLog]:
    """Most recent audit entries first, optionally filtered by action."""
    query = db.query(AuditLog)
    if action:
        query = query.filter(AuditLog.action == action)
    return query.order_by(AuditLog.id.desc()).limit(limit).all()
