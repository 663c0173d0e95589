"""
Change log (audit trail) service.

Records every structural data-tool operation for accountability. Recording
is fire-and-forget: it runs after the mutation has committed, and a failure
to write the log never blocks or rolls back the mutation itself.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from entity_merge.core.models import ChangeLog

logger = logging.getLogger(__name__)


def record(
    db: Session,
    actor: Optional[Any],
    action_type: str,
    entity_type: str,
    description: str,
    entity_id: Optional[Any] = None,
    entity_name: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Optional[ChangeLog]:
    """
    Append a change log entry.

    Args:
        db: Database session (the mutation's transaction must already be committed)
        actor: Operator who performed the change (anything with user_id/name/email)
        action_type: merge_accounts, merge_locations, add_location, remove_location
        entity_type: "account" or "location"
        description: Human-readable summary
        entity_id: Id of the surviving/affected entity
        entity_name: Display name of that entity
        details: Structured ids and counts

    Returns:
        Created entry, or None if writing it failed
    """
    user_id = getattr(actor, "user_id", None)
    entry = ChangeLog(
        user_id=str(user_id) if user_id is not None else None,
        user_name=getattr(actor, "name", None),
        user_email=getattr(actor, "email", None),
        action_type=action_type,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        entity_name=entity_name,
        description=description,
        details=details,
    )
    try:
        db.add(entry)
        db.commit()
        db.refresh(entry)
    except SQLAlchemyError:
        logger.exception(f"Failed to record change log entry for {action_type} {entity_id}")
        try:
            db.rollback()
        except SQLAlchemyError:
            logger.exception("Rollback after change log failure also failed")
        return None

    logger.debug(f"Audit: {action_type} on {entity_type} {entity_id}")
    return entry


def get_change_log(
    db: Session,
    limit: int = 50,
    action_type: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Query the change log with optional filters, newest first.

    Args:
        db: Database session
        limit: Maximum results
        action_type: Filter by action type
        entity_type: Filter by entity type
        entity_id: Filter by entity id

    Returns:
        List of change log entries
    """
    query = db.query(ChangeLog)

    if action_type:
        query = query.filter(ChangeLog.action_type == action_type)
    if entity_type:
        query = query.filter(ChangeLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(ChangeLog.entity_id == str(entity_id))

    rows = (
        query.order_by(ChangeLog.created_at.desc(), ChangeLog.id.desc())
        .limit(limit)
        .all()
    )

    return [
        {
            "id": row.id,
            "user_id": row.user_id,
            "user_name": row.user_name,
            "user_email": row.user_email,
            "action_type": row.action_type,
            "entity_type": row.entity_type,
            "entity_id": row.entity_id,
            "entity_name": row.entity_name,
            "description": row.description,
            "details": row.details,
            "created_at": row.created_at.isoformat() if row.created_at else None,
        }
        for row in rows
    ]


class ChangeLogRecorder:
    """
    Audit recorder bound to a session.

    Services receive one of these (or any callable with the same signature)
    and invoke it after their transaction commits.
    """

    def __init__(self, db: Session):
        self.db = db

    def __call__(
        self,
        actor: Optional[Any],
        action_type: str,
        entity_type: str,
        description: str,
        entity_id: Optional[Any] = None,
        entity_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[ChangeLog]:
        return record(
            self.db,
            actor,
            action_type=action_type,
            entity_type=entity_type,
            description=description,
            entity_id=entity_id,
            entity_name=entity_name,
            details=details,
        )
