from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from volsync.models.volumetrica import VolumetricaAccount
from volsync.repositories.base import BaseRepository
from volsync.schemas.volumetrica import AccountResponse


class AccountRepository(BaseRepository[VolumetricaAccount, AccountResponse]):
    """Account projection keyed by the upstream account id."""

    def __init__(self, db: Session):
        super().__init__(VolumetricaAccount, AccountResponse, db)

    def get_account(self, account_id: str) -> Optional[AccountResponse]:
        return self.get(account_id)

    def link_user(
        self,
        account_id: str,
        user_id: str,
        event_id: Optional[str] = None,
        linked_at: Optional[datetime] = None,
    ) -> bool:
        """
        Attach ``user_id`` to an existing account that has none.

        Additive only: other columns are left untouched, and ``raw`` gains
        ``userId``/``user`` keys only when they are absent. Returns True when
        a row was patched.
        """
        self._ensure_clean_session()
        try:
            account = self.db.get(VolumetricaAccount, account_id, populate_existing=True)
            if account is None or account.user_id:
                return False

            raw = dict(account.raw) if isinstance(account.raw, dict) else {}
            raw.setdefault("userId", user_id)
            raw.setdefault("user", {"userId": user_id})

            account.user_id = user_id
            account.raw = raw
            if event_id:
                account.last_event_id = event_id
            if linked_at:
                account.updated_at = linked_at
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return True

    def list_account_ids_for_users(
        self, user_ids: Iterable[str], include_deleted: bool = False
    ) -> List[str]:
        self._ensure_clean_session()
        ids = [user_id for user_id in dict.fromkeys(user_ids) if user_id]
        if not ids:
            return []
        query = self.db.query(VolumetricaAccount.account_id).filter(
            VolumetricaAccount.user_id.in_(ids)
        )
        if not include_deleted:
            query = query.filter(VolumetricaAccount.is_deleted.is_(False))
        query = query.order_by(VolumetricaAccount.account_id)
        return [row.account_id for row in query.all()]

    def link_unowned_accounts(
        self, account_ids: Iterable[str], user_id: str, linked_at: datetime
    ) -> int:
        """Assign ``user_id`` to projected accounts among ``account_ids`` that have no owner."""
        self._ensure_clean_session()
        ids = list(dict.fromkeys(account_ids))
        if not ids:
            return 0
        try:
            rows = (
                self.db.query(VolumetricaAccount)
                .populate_existing()
                .filter(
                    VolumetricaAccount.account_id.in_(ids),
                    VolumetricaAccount.user_id.is_(None),
                )
                .all()
            )
            for row in rows:
                raw = dict(row.raw) if isinstance(row.raw, dict) else {}
                raw.setdefault("userId", user_id)
                raw.setdefault("user", {"userId": user_id})
                row.user_id = user_id
                row.raw = raw
                row.updated_at = linked_at
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return len(rows)
