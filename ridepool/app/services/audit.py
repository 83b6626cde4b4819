"""
Audit logging service for ride and request transitions.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from ridepool.app.models.audit_log import AuditLog


class AuditAction:
    """Standardized audit action constants."""
    RIDE_CREATED = "RIDE_CREATED"
    RIDE_STARTED = "RIDE_STARTED"
    RIDE_COMPLETED = "RIDE_COMPLETED"
    RIDE_CANCELLED = "RIDE_CANCELLED"
    RIDE_REGENERATED = "RIDE_REGENERATED"

    REQUEST_SUBMITTED = "REQUEST_SUBMITTED"
    REQUEST_ACCEPTED = "REQUEST_ACCEPTED"
    REQUEST_REJECTED = "REQUEST_REJECTED"
    REQUEST_CANCELLED = "REQUEST_CANCELLED"
    REQUEST_CHECKED_IN = "REQUEST_CHECKED_IN"
    REQUEST_CHECKED_OUT = "REQUEST_CHECKED_OUT"
    REQUEST_RATED = "REQUEST_RATED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    ride_id: Optional[int] = None,
    request_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Log a transition to the audit log.

    Called after the transition itself has committed, so an audit failure
    never undoes a booking.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action
        ride_id: Ride acted upon
        request_id: Ride request acted upon (if applicable)
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        action=action,
        ride_id=ride_id,
        request_id=request_id,
        meta_data=metadata,
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def get_ride_audit_trail(
    db: AsyncSession,
    ride_id: int,
    limit: int = 100
) -> list[AuditLog]:
    """Audit entries for one ride, most recent first."""
    query = (
        select(AuditLog)
        .where(AuditLog.ride_id == ride_id)
        .order_by(desc(AuditLog.timestamp), desc(AuditLog.id))
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all())
