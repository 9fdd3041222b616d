"""Domain entities."""

from friends_db.domain.entities.friend import Friend
from friends_db.domain.entities.schema import CollectionSchema

__all__ = [
    "CollectionSchema",
    "Friend",
]
