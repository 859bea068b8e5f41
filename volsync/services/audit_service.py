import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from volsync.core.security import AdminPrincipal
from volsync.repositories.audit_log_repository import AuditLogRepository

logger = logging.getLogger(__name__)


class AuditService:
    """Fire-and-forget audit sink; a failed write never reaches the caller."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AuditLogRepository(db)

    def record(
        self,
        action: str,
        actor: Optional[AdminPrincipal] = None,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        try:
            self.repo.create_entry(
                action=action,
                actor_user_id=actor.user_id if actor else None,
                actor_email=actor.email if actor else None,
                target_type=target_type,
                target_id=target_id,
                details=metadata,
            )
            return True
        except Exception as e:
            logger.error(f"Audit write failed for {action}: {str(e)}")
            return False
