import enum
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from leavedesk.models.audit_log import AuditLog
from leavedesk.services.base import BaseService


def _jsonable(obj: Any) -> Any:
    """Ensure serialization of enums, dates and nested Pydantic models in audit payloads."""
    if hasattr(obj, "model_dump"):
        return _jsonable(obj.model_dump())
    if isinstance(obj, dict):
        return {k: _jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_jsonable(i) for i in obj]
    if isinstance(obj, enum.Enum):
        return obj.value
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    return obj


class AuditService(BaseService):
    def __init__(self, db, actor_id: Optional[int] = None):
        super().__init__(db)
        self.actor_id = actor_id

    def record(
        self,
        entity_type: str,
        entity_id: Optional[int],
        action: str,
        old_values: Optional[dict] = None,
        new_values: Optional[dict] = None,
    ) -> Optional[AuditLog]:
        """
        Append an audit entry inside the caller's transaction.

        The entry is written in a savepoint: it commits together with the mutation it
        documents, and a failure to write it rolls back only the savepoint. Audit is
        best-effort and never breaks the primary operation.
        """
        # Surface errors from the caller's pending work before entering the savepoint
        self.db.flush()
        try:
            with self.db.begin_nested():
                entry = AuditLog(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    action=action,
                    old_values=_jsonable(old_values),
                    new_values=_jsonable(new_values),
                    user_id=self.actor_id,
                )
                self.db.add(entry)
            return entry
        except SQLAlchemyError as e:
            self._logger.error(f"FAILED TO AUDIT LOG {entity_type}:{entity_id} {action}: {e}", exc_info=True)
            return None

    def history(self, entity_type: str, entity_id: int):
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.id)
            .all()
        )
