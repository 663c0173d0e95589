"""
Shared plumbing for services that change account/location structure.
"""
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from entity_merge.core.audit_service import ChangeLogRecorder
from entity_merge.core.gateway import PersistenceGateway, SqlAlchemyGateway
from entity_merge.core.models import Activity, Agreement, Note

logger = logging.getLogger(__name__)

AuditRecorder = Callable[..., Any]

# Dependent tables that carry an account_id, keyed by result label
ACCOUNT_DEPENDENTS = (
    ("agreements", Agreement),
    ("activities", Activity),
    ("notes", Note),
)


class StructuralService:
    """Base for the merge executor and topology mutator."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        recorder: Optional[AuditRecorder] = None,
    ):
        self.gateway = gateway
        self.recorder = recorder

    @classmethod
    def for_session(cls, db: Session):
        """Service wired to a SQLAlchemy session and the change log."""
        return cls(SqlAlchemyGateway(db), recorder=ChangeLogRecorder(db))

    def _audit(
        self,
        actor: Optional[Any],
        action_type: str,
        entity_type: str,
        description: str,
        entity_id: Optional[Any] = None,
        entity_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Notify the recorder; the committed change stands whatever happens here."""
        if self.recorder is None:
            return
        try:
            self.recorder(
                actor,
                action_type=action_type,
                entity_type=entity_type,
                description=description,
                entity_id=entity_id,
                entity_name=entity_name,
                details=details,
            )
        except Exception:
            logger.exception(f"Audit recorder failed for {action_type} on {entity_type} {entity_id}")

    def _reassign_account_dependents(self, from_ids, to_account_id: int) -> Dict[str, int]:
        """Bulk-move agreements, activities and notes between accounts."""
        return {
            label: self.gateway.bulk_update_where_in(
                model, "account_id", from_ids, {"account_id": to_account_id}
            )
            for label, model in ACCOUNT_DEPENDENTS
        }
