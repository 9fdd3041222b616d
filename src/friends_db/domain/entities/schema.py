"""Collection schema entity.

A collection is described by its name, the field holding the primary key
and whether the store assigns keys itself. For auto-increment collections
the schema also carries the key generator: the highest key ever handed out.
The generator only moves forward, so keys are never reused after a delete.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from friends_db.domain.value_objects import RecordKey


@dataclass(frozen=True, slots=True)
class CollectionSchema:
    """Schema of a single collection.

    Attributes:
        name: Collection name, unique within the database
        key_path: Name of the record field holding the primary key
        auto_increment: Whether the store assigns keys on insert
        key_generator: Highest key assigned so far (0 for a new collection)
    """

    name: str
    key_path: str = "id"
    auto_increment: bool = True
    key_generator: int = 0

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("collection name must not be empty")
        if not self.key_path:
            raise ValueError("key_path must not be empty")
        if self.key_generator < 0:
            raise ValueError(f"key_generator must be non-negative, got {self.key_generator}")

    def next_key(self) -> RecordKey:
        """Return the key the generator will hand out next."""
        return RecordKey(self.key_generator + 1)

    def advanced_to(self, key: int) -> CollectionSchema:
        """Return a schema whose generator covers key.

        The generator never moves backwards.
        """
        if key <= self.key_generator:
            return self
        return replace(self, key_generator=key)
