"""
PositionLedger: keeps every (owner, column) pair numbered 1..N.

A ledger is built per request from a snapshot of one owner's items. All
operations run against a private copy; callers read back `changed()` and
`removed()` and persist exactly those rows inside the same transaction the
snapshot was read in.

Positions may be transiently inconsistent while an operation shifts siblings,
never once it returns.
"""
import logging
from typing import Dict, Iterable, List, Optional, Set

from .errors import InvalidArgument, NotFound
from .schema import Column, TaskItem

logger = logging.getLogger(__name__)

COLUMN_ORDER = {c: i for i, c in enumerate(Column)}


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def _sort_key(item: TaskItem):
    return (item.position, item.created_at.isoformat() if item.created_at else "", item.task_id)


class PositionLedger:
    """Contiguous ordering of one owner's tasks, column by column."""

    def __init__(self, owner_id: str, snapshot: Iterable[TaskItem] = ()):
        self.owner_id = owner_id
        self._items: Dict[str, TaskItem] = {}
        self._original: Dict[str, tuple] = {}
        self._removed: Set[str] = set()
        for item in snapshot:
            # Rows of other owners are invisible, same as missing rows
            if item.owner_id != owner_id:
                continue
            self._items[item.task_id] = item.copy()
            self._original[item.task_id] = item.slot()

    # ── queries ──────────────────────────────────────────────────────────────

    def column_items(self, column: Column) -> List[TaskItem]:
        """Items of one column, ordered by position."""
        return sorted((i for i in self._items.values() if i.column == column), key=_sort_key)

    def items(self) -> List[TaskItem]:
        """Full resulting snapshot, ordered by column then position."""
        return sorted(self._items.values(), key=lambda i: (COLUMN_ORDER[i.column],) + _sort_key(i))

    def get(self, task_id: str) -> TaskItem:
        item = self._items.get(task_id)
        if item is None:
            raise NotFound(f"Task {task_id} not found")
        return item

    def changed(self) -> List[TaskItem]:
        """Items added, or whose column/position differ from the snapshot."""
        return [
            item for item in self.items()
            if self._original.get(item.task_id) != item.slot()
        ]

    def removed(self) -> List[str]:
        return sorted(self._removed)

    def next_position(self, column: Column) -> int:
        positions = [i.position for i in self._items.values() if i.column == column]
        return max(positions) + 1 if positions else 1

    def violations(self) -> Dict[Column, List[int]]:
        """Columns whose positions are not exactly 1..N, with their positions."""
        bad: Dict[Column, List[int]] = {}
        for column in Column:
            positions = sorted(i.position for i in self._items.values() if i.column == column)
            if positions != list(range(1, len(positions) + 1)):
                bad[column] = positions
        return bad

    # ── operations ───────────────────────────────────────────────────────────

    def append(self, item: TaskItem) -> int:
        """Place a new item at the tail of its column. Returns its position."""
        if item.owner_id != self.owner_id:
            raise NotFound(f"Task {item.task_id} not found")
        if item.task_id in self._items:
            raise InvalidArgument(f"Task {item.task_id} already exists")
        placed = item.copy()
        placed.position = self.next_position(placed.column)
        self._items[placed.task_id] = placed
        return placed.position

    def remove(self, task_id: str) -> TaskItem:
        """Drop an item and close the gap it leaves in its column."""
        item = self.get(task_id)
        del self._items[task_id]
        if task_id in self._original:
            self._removed.add(task_id)
        for sibling in self.column_items(item.column):
            if sibling.position > item.position:
                sibling.position -= 1
        return item

    def reposition(self, task_id: str, new_position: int) -> TaskItem:
        """Move an item to another slot of the same column.

        The target is clamped to [1, N]; an out-of-range request lands at the
        nearest end instead of failing.
        """
        item = self.get(task_id)
        size = len(self.column_items(item.column))
        target = _clamp(int(new_position), 1, size)
        if target != new_position:
            logger.debug(f"Clamped position {new_position} -> {target} for task {task_id}")

        old = item.position
        if target == old:
            return item

        for sibling in self.column_items(item.column):
            if sibling.task_id == task_id:
                continue
            if target > old and old < sibling.position <= target:
                sibling.position -= 1
            elif target < old and target <= sibling.position < old:
                sibling.position += 1
        item.position = target
        return item

    def relocate(self, task_id: str, new_column: Column,
                 position: Optional[int] = None) -> TaskItem:
        """Move an item into another column, optionally at an explicit slot.

        Without a slot the item goes to the tail. An explicit slot is clamped
        to [1, M+1] where M is the destination size.
        """
        item = self.get(task_id)
        if new_column == item.column:
            raise InvalidArgument(
                f"Task {task_id} is already in {new_column.value}; reposition it instead"
            )

        destination = [i for i in self.column_items(new_column) if i.task_id != task_id]
        if position is None:
            target = max((i.position for i in destination), default=0) + 1
        else:
            target = _clamp(int(position), 1, len(destination) + 1)
            if target != position:
                logger.debug(f"Clamped position {position} -> {target} for task {task_id}")

        for sibling in destination:
            if sibling.position >= target:
                sibling.position += 1

        old_column, old_position = item.column, item.position
        for sibling in self.column_items(old_column):
            if sibling.task_id != task_id and sibling.position > old_position:
                sibling.position -= 1

        item.column = new_column
        item.position = target
        return item

    def bulk_reorder(self, column: Column, ordered_ids: List[str]) -> List[TaskItem]:
        """Renumber a column from an explicit ordering.

        The list must be a full permutation of the column: every member
        exactly once, nothing else. Anything else is rejected untouched.
        """
        if not ordered_ids:
            raise InvalidArgument("task_ids must list every task in the column")

        seen: Set[str] = set()
        duplicates = []
        for task_id in ordered_ids:
            if task_id in seen:
                duplicates.append(task_id)
            seen.add(task_id)
        if duplicates:
            raise InvalidArgument(f"Duplicate task ids: {', '.join(duplicates)}")

        members = {i.task_id for i in self.column_items(column)}
        foreign = [t for t in ordered_ids if t not in members]
        if foreign:
            raise InvalidArgument(
                f"Tasks not in {column.value}: {', '.join(foreign)}"
            )
        missing = sorted(members - seen)
        if missing:
            raise InvalidArgument(
                f"Reorder of {column.value} omits tasks: {', '.join(missing)}"
            )

        for index, task_id in enumerate(ordered_ids):
            self._items[task_id].position = index + 1
        return self.column_items(column)

    def compact(self, column: Optional[Column] = None) -> List[TaskItem]:
        """Renumber columns to 1..N keeping their current relative order.

        Duplicate positions are broken by created_at, then task_id.
        """
        columns = [column] if column is not None else list(Column)
        touched = []
        for col in columns:
            for index, item in enumerate(self.column_items(col)):
                if item.position != index + 1:
                    item.position = index + 1
                    touched.append(item)
        return touched
