"""
Task service: board operations as single read-modify-write units.

Every mutating call opens one owner-scoped transaction, reads the owner's
whole board once, lets a PositionLedger recompute positions in memory, writes
back only the rows that differ, and commits. Failures come back as
LedgerResult values; nothing is left half-written.
"""
import logging
from typing import Callable, Dict, List, Optional, Union

from .errors import (
    ConflictRetryable,
    Internal,
    InvalidArgument,
    LedgerError,
    LedgerResult,
    NotFound,
)
from .ledger import COLUMN_ORDER, PositionLedger
from .schema import Column, TaskItem, new_task_id, utc_now
from .store import TaskStore, TaskUnitOfWork

logger = logging.getLogger(__name__)

ColumnLike = Union[Column, str, int]


def parse_column(value: ColumnLike) -> Column:
    try:
        return Column.parse(value)
    except ValueError as e:
        raise InvalidArgument(str(e)) from e


def parse_position(value) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidArgument(f"Invalid position: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise InvalidArgument(f"Invalid position: {value!r}") from e


class TaskService:
    """Owner-scoped task operations over a TaskStore."""

    def __init__(self, store: TaskStore, conflict_retries: int = 1):
        self.store = store
        self.conflict_retries = conflict_retries

    # ── plumbing ─────────────────────────────────────────────────────────────

    def _run(self, owner_id: str, action: str,
             fn: Callable[[PositionLedger], List[TaskItem]]) -> LedgerResult:
        """Run `fn` against a fresh ledger inside one transaction.

        A ConflictRetryable reruns the whole unit, read included.
        """
        attempts = max(0, self.conflict_retries) + 1
        for attempt in range(1, attempts + 1):
            try:
                with self.store.transaction(owner_id) as uow:
                    snapshot = uow.list_items()
                    ledger = PositionLedger(owner_id, snapshot)
                    items = fn(ledger)
                    self._write_back(uow, snapshot, ledger)
                return LedgerResult.success(items)
            except ConflictRetryable as e:
                if attempt < attempts:
                    logger.debug(f"Retrying {action} for user: {owner_id} ({e})")
                    continue
                logger.warning(f"Gave up {action} for user: {owner_id}: {e}")
                return LedgerResult.failure(e)
            except LedgerError as e:
                logger.warning(f"Rejected {action} for user: {owner_id}: {e}")
                return LedgerResult.failure(e)
            except Exception as e:
                logger.exception(f"Error {action} for user: {owner_id}")
                return LedgerResult.failure(Internal(f"Unexpected error: {e}"))
        return LedgerResult.failure(Internal(f"{action} did not run"))

    @staticmethod
    def _write_back(uow: TaskUnitOfWork, snapshot: List[TaskItem],
                    ledger: PositionLedger) -> None:
        before = {item.task_id: item for item in snapshot}
        now = utc_now()
        for task_id in ledger.removed():
            uow.delete(task_id)
        for item in ledger.items():
            original = before.get(item.task_id)
            if original is None:
                uow.insert(item)
            elif item != original:
                item.updated_at = now
                uow.update(item)

    @staticmethod
    def _read(fn: Callable[[], List[TaskItem]], action: str, owner_id: str) -> LedgerResult:
        try:
            return LedgerResult.success(fn())
        except LedgerError as e:
            logger.warning(f"Failed {action} for user: {owner_id}: {e}")
            return LedgerResult.failure(e)

    # ── reads ────────────────────────────────────────────────────────────────

    def list_tasks(self, owner_id: str) -> LedgerResult:
        """All of the owner's tasks, ordered by column then position."""
        def fn():
            items = self.store.list_for_owner(owner_id)
            return sorted(items, key=lambda i: (COLUMN_ORDER[i.column], i.position))
        return self._read(fn, "listing tasks", owner_id)

    def get_task(self, owner_id: str, task_id: str) -> LedgerResult:
        def fn():
            item = self.store.get(owner_id, task_id)
            if item is None:
                raise NotFound(f"Task {task_id} not found")
            return [item]
        return self._read(fn, f"retrieving task {task_id}", owner_id)

    def check_board(self, owner_id: str) -> LedgerResult:
        """Items of every column whose positions are not exactly 1..N."""
        def fn():
            ledger = PositionLedger(owner_id, self.store.list_for_owner(owner_id))
            bad = ledger.violations()
            return [item for item in ledger.items() if item.column in bad]
        return self._read(fn, "checking board", owner_id)

    # ── mutations ────────────────────────────────────────────────────────────

    def create_task(self, owner_id: str, title: str, description: str = "",
                    column: ColumnLike = Column.TODO) -> LedgerResult:
        """Append a new task at the tail of its column."""
        try:
            if not title or not str(title).strip():
                raise InvalidArgument("title is required")
            target = parse_column(column)
        except InvalidArgument as e:
            return LedgerResult.failure(e)

        def fn(ledger: PositionLedger):
            item = TaskItem(
                task_id=new_task_id(),
                owner_id=owner_id,
                title=str(title).strip(),
                description=description or "",
                column=target,
            )
            ledger.append(item)
            return [ledger.get(item.task_id)]

        result = self._run(owner_id, "creating task", fn)
        if result.ok:
            logger.info(f"Task created: {result.item.task_id} for user: {owner_id}")
        return result

    def update_task(self, owner_id: str, task_id: str, title: Optional[str] = None,
                    description: Optional[str] = None, column: Optional[ColumnLike] = None,
                    position=None) -> LedgerResult:
        """Edit payload; a column change relocates, else a position change repositions."""
        try:
            target = parse_column(column) if column is not None else None
            slot = parse_position(position)
        except InvalidArgument as e:
            return LedgerResult.failure(e)

        def fn(ledger: PositionLedger):
            item = ledger.get(task_id)
            if title is not None and str(title).strip():
                item.title = str(title).strip()
            if description is not None:
                item.description = description
            if target is not None and target != item.column:
                ledger.relocate(task_id, target, slot)
            elif slot is not None and slot != item.position:
                ledger.reposition(task_id, slot)
            return [item]

        result = self._run(owner_id, f"updating task {task_id}", fn)
        if result.ok:
            logger.info(f"Task updated: {task_id} for user: {owner_id}")
        return result

    def delete_task(self, owner_id: str, task_id: str) -> LedgerResult:
        """Remove a task and close the gap in its column."""
        result = self._run(owner_id, f"deleting task {task_id}",
                           lambda ledger: [ledger.remove(task_id)])
        if result.ok:
            logger.info(f"Task deleted: {task_id} for user: {owner_id}")
        return result

    def move_task(self, owner_id: str, task_id: str, column: ColumnLike,
                  position=None) -> LedgerResult:
        """Relocate to another column, or reposition within the same one."""
        try:
            target = parse_column(column)
            slot = parse_position(position)
        except InvalidArgument as e:
            return LedgerResult.failure(e)

        def fn(ledger: PositionLedger):
            item = ledger.get(task_id)
            if target != item.column:
                ledger.relocate(task_id, target, slot)
            elif slot is not None:
                ledger.reposition(task_id, slot)
            return [item]

        result = self._run(owner_id, f"moving task {task_id}", fn)
        if result.ok:
            logger.info(f"Task moved: {task_id} to {target.value} for user: {owner_id}")
        return result

    def reorder_tasks(self, owner_id: str, column: ColumnLike, task_ids: List[str]) -> LedgerResult:
        """Renumber a column from a full ordering of its task ids."""
        try:
            target = parse_column(column)
            if not isinstance(task_ids, (list, tuple)):
                raise InvalidArgument("task_ids must be a list")
        except InvalidArgument as e:
            return LedgerResult.failure(e)

        result = self._run(owner_id, f"reordering {target.value}",
                           lambda ledger: ledger.bulk_reorder(target, [str(t) for t in task_ids]))
        if result.ok:
            logger.info(f"Tasks reordered for user: {owner_id} in status: {target.value}")
        return result

    def repair_board(self, owner_id: str) -> LedgerResult:
        """Renumber every column of the board to 1..N, keeping relative order."""
        def fn(ledger: PositionLedger):
            touched = ledger.compact()
            if touched:
                logger.warning(f"Repaired {len(touched)} positions for user: {owner_id}")
            return ledger.items()
        return self._run(owner_id, "repairing board", fn)

    def positions(self, owner_id: str) -> Dict[Column, List[str]]:
        """Column -> ordered task ids. Raises LedgerError on storage failure."""
        board: Dict[Column, List[str]] = {c: [] for c in Column}
        for item in sorted(self.store.list_for_owner(owner_id), key=lambda i: i.position):
            board[item.column].append(item.task_id)
        return board
