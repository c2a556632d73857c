"""
Error taxonomy for board operations.

The ledger and store raise these; TaskService catches them and hands them
back inside a LedgerResult so callers decide what the user sees.
"""
from dataclasses import dataclass, field
from typing import List, Optional

from .schema import TaskItem


class LedgerError(Exception):
    """Base class for every board operation failure."""
    kind = "internal"
    http_status = 500


class NotFound(LedgerError):
    """Item is missing, or belongs to another owner (reported identically)."""
    kind = "not_found"
    http_status = 404


class InvalidArgument(LedgerError):
    """Malformed input: bad reorder list, same-column relocate, blank title."""
    kind = "invalid_argument"
    http_status = 400


class ConflictRetryable(LedgerError):
    """Write lock could not be acquired in time; retry the whole operation."""
    kind = "conflict"
    http_status = 409


class Internal(LedgerError):
    """Persistence failure unrelated to the above."""
    kind = "internal"
    http_status = 500


@dataclass
class LedgerResult:
    """Outcome of one service call: the affected items, or an error."""
    items: List[TaskItem] = field(default_factory=list)
    error: Optional[LedgerError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def item(self) -> Optional[TaskItem]:
        return self.items[0] if self.items else None

    def unwrap(self) -> List[TaskItem]:
        """Return items, re-raising the error if there is one."""
        if self.error is not None:
            raise self.error
        return self.items

    @classmethod
    def success(cls, items: List[TaskItem]) -> "LedgerResult":
        return cls(items=list(items))

    @classmethod
    def failure(cls, error: LedgerError) -> "LedgerResult":
        return cls(error=error)
