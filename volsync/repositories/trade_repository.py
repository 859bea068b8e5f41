from typing import List

from sqlalchemy import desc
from sqlalchemy.orm import Session

from volsync.models.volumetrica import VolumetricaTrade
from volsync.repositories.base import BaseRepository
from volsync.schemas.volumetrica import TradeResponse


class TradeRepository(BaseRepository[VolumetricaTrade, TradeResponse]):
    def __init__(self, db: Session):
        super().__init__(VolumetricaTrade, TradeResponse, db)

    def list_by_account(self, account_id: str, limit: int = 200) -> List[TradeResponse]:
        """Most recent closed trades first."""
        self._ensure_clean_session()
        rows = (
            self.db.query(VolumetricaTrade)
            .filter(VolumetricaTrade.account_id == account_id)
            .order_by(desc(VolumetricaTrade.exit_date), VolumetricaTrade.trade_key)
            .limit(limit)
            .all()
        )
        return [self._to_schema(row) for row in rows]
