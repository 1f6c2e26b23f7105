"""
Directory port: existence checks for users and entities.

The engine never manages users or entities; it only needs to know whether a
referenced id exists and is active.
"""
from sqlalchemy.orm import Session

from app.models.reference import Entity, User


class Directory:
    """Read-only lookup of users and entities."""

    def user_exists(self, user_id: int) -> bool:
        raise NotImplementedError

    def entity_exists(self, entity_id: int) -> bool:
        raise NotImplementedError


class DatabaseDirectory(Directory):
    """Directory backed by the ``users`` and ``entities`` tables."""

    def __init__(self, db: Session):
        self.db = db

    def user_exists(self, user_id: int) -> bool:
        return (
            self.db.query(User.id)
            .filter(User.id == user_id, User.is_active.is_(True))
            .first()
            is not None
        )

    def entity_exists(self, entity_id: int) -> bool:
        return (
            self.db.query(Entity.id)
            .filter(Entity.id == entity_id, Entity.is_active.is_(True))
            .first()
            is not None
        )
