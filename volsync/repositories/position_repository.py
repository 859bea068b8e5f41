from typing import List

from sqlalchemy.orm import Session

from volsync.models.volumetrica import VolumetricaPosition
from volsync.repositories.base import BaseRepository
from volsync.schemas.volumetrica import PositionResponse


class PositionRepository(BaseRepository[VolumetricaPosition, PositionResponse]):
    def __init__(self, db: Session):
        super().__init__(VolumetricaPosition, PositionResponse, db)

    def list_by_account(self, account_id: str) -> List[PositionResponse]:
        return self.find_all(filters={"account_id": account_id}, order_by="position_key")
