from sqlalchemy.orm import Session

from volsync.models.volumetrica import VolumetricaSubscription
from volsync.repositories.base import BaseRepository
from volsync.schemas.volumetrica import SubscriptionResponse


class SubscriptionRepository(BaseRepository[VolumetricaSubscription, SubscriptionResponse]):
    def __init__(self, db: Session):
        super().__init__(VolumetricaSubscription, SubscriptionResponse, db)
