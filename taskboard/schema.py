"""
Task item schema.

Board layout:
  Todo → In Progress → Done

Each task sits in exactly one column at a 1-based position. The ledger owns
column/position; title, description and timestamps are payload.
"""
from enum import Enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Union
import uuid


class Column(Enum):
    """Board columns, in display order."""
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    @classmethod
    def parse(cls, value: Union[str, int, "Column"]) -> "Column":
        """Accept a Column, its wire value, its name, or its ordinal (0/1/2).

        Raises ValueError for anything else.
        """
        if isinstance(value, Column):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid column: {value!r}")
        if isinstance(value, int):
            members = list(cls)
            if 0 <= value < len(members):
                return members[value]
            raise ValueError(f"Invalid column: {value!r}")
        if isinstance(value, str):
            key = value.strip().lower().replace("-", "_").replace(" ", "_")
            if key == "inprogress":
                key = "in_progress"
            try:
                return cls(key)
            except ValueError:
                pass
        raise ValueError(f"Invalid column: {value!r}")


def new_task_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TaskItem:
    """One task on a user's board."""

    task_id: str
    owner_id: str
    title: str
    description: str = ""

    # Ordering (owned by the ledger)
    column: Column = Column.TODO
    position: int = 0

    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None

    def copy(self) -> "TaskItem":
        return replace(self)

    def slot(self) -> tuple:
        """(column, position) pair, the only fields the ledger writes."""
        return (self.column, self.position)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "owner_id": self.owner_id,
            "title": self.title,
            "description": self.description,
            "status": self.column.value,
            "order": self.position,
            "created_at": self.created_at.isoformat() if isinstance(self.created_at, datetime) else self.created_at,
            "updated_at": self.updated_at.isoformat() if isinstance(self.updated_at, datetime) else self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskItem":
        created_at = data.get("created_at")
        updated_at = data.get("updated_at")
        return cls(
            task_id=data["task_id"],
            owner_id=data["owner_id"],
            title=data.get("title", ""),
            description=data.get("description") or "",
            column=Column.parse(data.get("status", Column.TODO)),
            position=int(data.get("order", 0)),
            created_at=datetime.fromisoformat(created_at) if created_at else utc_now(),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )
