"""Friend record entity.

Friends are stored as plain JSON-compatible values:

    {"id": 1, "name": "Anna", "age": 25, "added": "2026-10-18T09:30:00+00:00"}

The ``id`` field is assigned by the store on insert and is never part of
the value a caller submits.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from numbers import Real
from typing import Any

from friends_db.domain.errors import DataError
from friends_db.domain.value_objects import RecordKey, is_valid_key


@dataclass(frozen=True, slots=True)
class Friend:
    """A record of the ``friends`` collection.

    Instances are immutable; every read hands out a fresh copy decoded
    from storage, never a live reference.

    Attributes:
        name: Display name
        age: Age in years (any real number)
        added: Timestamp set at insert time
        id: Store-assigned key, None until the record has been inserted
    """

    name: str
    age: int | float
    added: datetime
    id: RecordKey | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str):
            raise DataError(f"name must be a string, got {type(self.name).__name__}")
        if isinstance(self.age, bool) or not isinstance(self.age, Real):
            raise DataError(f"age must be a number, got {type(self.age).__name__}")
        if not isinstance(self.added, datetime):
            raise DataError("added must be a datetime")
        if self.id is not None and not is_valid_key(self.id):
            raise DataError(f"id must be a positive integer, got {self.id!r}")

    def to_value(self) -> dict[str, Any]:
        """Serialize to the persisted value layout.

        The key field is omitted for records that were never stored.
        """
        value: dict[str, Any] = {
            "name": self.name,
            "age": self.age,
            "added": self.added.isoformat(),
        }
        if self.id is not None:
            value["id"] = self.id
        return value

    @classmethod
    def from_value(cls, value: dict[str, Any]) -> Friend:
        """Deserialize from a stored value.

        Raises:
            DataError: If the value does not have the record layout
        """
        try:
            return cls(
                id=RecordKey(value["id"]),
                name=value["name"],
                age=value["age"],
                added=datetime.fromisoformat(value["added"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DataError(f"malformed friend record: {value!r}") from e
