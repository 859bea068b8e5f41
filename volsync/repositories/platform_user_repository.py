from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from volsync.models.volumetrica import VolumetricaUser
from volsync.repositories.base import BaseRepository
from volsync.schemas.volumetrica import PlatformUserResponse


class PlatformUserRepository(BaseRepository[VolumetricaUser, PlatformUserResponse]):
    def __init__(self, db: Session):
        super().__init__(VolumetricaUser, PlatformUserResponse, db)

    def find_by_identifier(self, identifier: str) -> Optional[PlatformUserResponse]:
        """
        Look up a platform user by upstream id, external id, or email.

        Email matching reads ``raw.email`` and is only attempted when the
        identifier looks like an address.
        """
        self._ensure_clean_session()
        conditions = [
            VolumetricaUser.volumetrica_user_id == identifier,
            VolumetricaUser.external_id == identifier,
        ]
        if "@" in identifier:
            conditions.append(VolumetricaUser.raw["email"].as_string() == identifier)
        row = (
            self.db.query(VolumetricaUser)
            .filter(or_(*conditions))
            .order_by(VolumetricaUser.volumetrica_user_id)
            .first()
        )
        return self._to_schema(row)
