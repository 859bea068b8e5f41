from typing import Any, Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from volsync.models.audit import AdminAuditLog
from volsync.repositories.base import BaseRepository
from volsync.schemas.volumetrica import AuditLogResponse


class AuditLogRepository(BaseRepository[AdminAuditLog, AuditLogResponse]):
    def __init__(self, db: Session):
        super().__init__(AdminAuditLog, AuditLogResponse, db)

    def create_entry(
        self,
        action: str,
        actor_user_id: Optional[str] = None,
        actor_email: Optional[str] = None,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditLogResponse:
        self._ensure_clean_session()
        entry = AdminAuditLog(
            action=action,
            actor_user_id=actor_user_id,
            actor_email=actor_email,
            target_type=target_type,
            target_id=target_id,
            details=details,
        )
        self.db.add(entry)
        try:
            self.db.flush()
            self.db.refresh(entry)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return self._to_schema(entry)

    def get_recent(self, limit: int = 50, action: Optional[str] = None) -> List[AuditLogResponse]:
        self._ensure_clean_session()
        query = self.db.query(AdminAuditLog)
        if action:
            query = query.filter(AdminAuditLog.action == action)
        rows = query.order_by(desc(AdminAuditLog.id)).limit(limit).all()
        return [self._to_schema(row) for row in rows]
