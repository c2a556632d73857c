"""
Tests for PositionLedger: append, remove, reposition, relocate, bulk reorder.
"""
import random

import pytest

from taskboard.errors import InvalidArgument, NotFound
from taskboard.ledger import PositionLedger
from taskboard.schema import Column, TaskItem

TODO, DOING, DONE = Column.TODO, Column.IN_PROGRESS, Column.DONE


def item(task_id, column=TODO, position=1, owner="U"):
    return TaskItem(task_id=task_id, owner_id=owner, title=task_id, column=column, position=position)


def order(ledger, column):
    return [(i.task_id, i.position) for i in ledger.column_items(column)]


@pytest.fixture
def abc():
    """Column [A1, B2, C3] in Todo."""
    return PositionLedger("U", [item("A", TODO, 1), item("B", TODO, 2), item("C", TODO, 3)])


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Append / Remove
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_append_lands_at_tail():
    """A, B, C appended in order get positions 1, 2, 3"""
    ledger = PositionLedger("U")
    assert ledger.append(item("A", position=0)) == 1
    assert ledger.append(item("B", position=0)) == 2
    assert ledger.append(item("C", position=0)) == 3
    assert order(ledger, TODO) == [("A", 1), ("B", 2), ("C", 3)]


def test_append_is_per_column():
    ledger = PositionLedger("U", [item("A", TODO, 1), item("B", TODO, 2)])
    assert ledger.append(item("D", DOING)) == 1


def test_append_does_not_touch_existing(abc):
    abc.append(item("D"))
    assert [i.task_id for i in abc.changed()] == ["D"]


def test_append_rejects_other_owner():
    ledger = PositionLedger("U")
    with pytest.raises(NotFound):
        ledger.append(item("X", owner="V"))


def test_remove_closes_gap(abc):
    """Removing B (2) moves C to 2; A stays at 1"""
    removed = abc.remove("B")
    assert removed.task_id == "B"
    assert order(abc, TODO) == [("A", 1), ("C", 2)]
    assert abc.removed() == ["B"]
    assert [(i.task_id, i.position) for i in abc.changed()] == [("C", 2)]


def test_remove_leaves_other_columns_alone():
    ledger = PositionLedger("U", [item("A", TODO, 1), item("B", TODO, 2), item("D", DOING, 1), item("E", DOING, 2)])
    ledger.remove("A")
    assert order(ledger, DOING) == [("D", 1), ("E", 2)]
    assert order(ledger, TODO) == [("B", 1)]


def test_remove_missing_is_not_found(abc):
    with pytest.raises(NotFound):
        abc.remove("nope")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Reposition
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_reposition_down(abc):
    """A(1) to 3 in [A1,B2,C3] gives [B1,C2,A3]"""
    abc.reposition("A", 3)
    assert order(abc, TODO) == [("B", 1), ("C", 2), ("A", 3)]


def test_reposition_up(abc):
    abc.reposition("C", 1)
    assert order(abc, TODO) == [("C", 1), ("A", 2), ("B", 3)]


def test_reposition_middle(abc):
    abc.reposition("A", 2)
    assert order(abc, TODO) == [("B", 1), ("A", 2), ("C", 3)]


def test_reposition_same_slot_is_noop(abc):
    abc.reposition("B", 2)
    assert abc.changed() == []


def test_reposition_clamps_high(abc):
    abc.reposition("A", 99)
    assert order(abc, TODO) == [("B", 1), ("C", 2), ("A", 3)]


def test_reposition_clamps_low(abc):
    abc.reposition("C", -4)
    assert order(abc, TODO) == [("C", 1), ("A", 2), ("B", 3)]


def test_reposition_other_owner_is_not_found():
    ledger = PositionLedger("U", [item("A"), item("X", owner="V")])
    with pytest.raises(NotFound):
        ledger.reposition("X", 1)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Relocate
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_relocate_with_explicit_position():
    """C to In Progress at 1: In Progress [C1, D2], Todo [A1]"""
    ledger = PositionLedger("U", [item("A", TODO, 1), item("C", TODO, 2), item("D", DOING, 1)])
    moved = ledger.relocate("C", DOING, 1)
    assert moved.column == DOING
    assert order(ledger, DOING) == [("C", 1), ("D", 2)]
    assert order(ledger, TODO) == [("A", 1)]


def test_relocate_defaults_to_tail(abc):
    abc.append(item("D", DOING))
    abc.relocate("A", DOING)
    assert order(abc, DOING) == [("D", 1), ("A", 2)]
    assert order(abc, TODO) == [("B", 1), ("C", 2)]


def test_relocate_into_empty_column(abc):
    abc.relocate("B", DONE, 5)
    assert order(abc, DONE) == [("B", 1)]
    assert order(abc, TODO) == [("A", 1), ("C", 2)]


def test_relocate_same_column_rejected(abc):
    with pytest.raises(InvalidArgument):
        abc.relocate("A", TODO, 2)
    assert abc.changed() == []


def test_relocate_missing_is_not_found(abc):
    with pytest.raises(NotFound):
        abc.relocate("Z", DONE)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Bulk reorder (full permutation required)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_bulk_reorder_full_permutation(abc):
    abc.bulk_reorder(TODO, ["C", "A", "B"])
    assert order(abc, TODO) == [("C", 1), ("A", 2), ("B", 3)]


def test_bulk_reorder_partial_list_rejected(abc):
    """[C, A] omits B and is rejected without touching positions"""
    with pytest.raises(InvalidArgument, match="omits"):
        abc.bulk_reorder(TODO, ["C", "A"])
    assert order(abc, TODO) == [("A", 1), ("B", 2), ("C", 3)]
    assert abc.changed() == []


@pytest.mark.parametrize("ids", [
    [],
    ["A", "B", "B", "C"],
    ["A", "B", "C", "Z"],
])
def test_bulk_reorder_rejects_malformed(abc, ids):
    with pytest.raises(InvalidArgument):
        abc.bulk_reorder(TODO, ids)
    assert abc.changed() == []


def test_bulk_reorder_rejects_other_column_and_owner():
    ledger = PositionLedger("U", [item("A", TODO, 1), item("D", DOING, 1), item("X", TODO, 1, owner="V")])
    with pytest.raises(InvalidArgument):
        ledger.bulk_reorder(TODO, ["A", "D"])
    with pytest.raises(InvalidArgument):
        ledger.bulk_reorder(TODO, ["X", "A"])


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Snapshot handling / integrity
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_snapshot_is_not_mutated():
    snapshot = [item("A", TODO, 1), item("B", TODO, 2)]
    ledger = PositionLedger("U", snapshot)
    ledger.reposition("A", 2)
    assert [(i.task_id, i.position) for i in snapshot] == [("A", 1), ("B", 2)]


def test_violations_and_compact():
    ledger = PositionLedger("U", [item("A", TODO, 2), item("B", TODO, 5), item("C", TODO, 5), item("D", DOING, 1)])
    assert ledger.violations() == {TODO: [2, 5, 5]}
    ledger.compact()
    assert ledger.violations() == {}
    assert order(ledger, TODO) == [("A", 1), ("B", 2), ("C", 3)]


@pytest.mark.parametrize("seed", range(5))
def test_random_operations_keep_columns_contiguous(seed):
    """Any sequence of operations leaves every column numbered 1..N"""
    rng = random.Random(seed)
    ledger = PositionLedger("U")
    counter = 0
    for _ in range(200):
        ids = [i.task_id for i in ledger.items()]
        op = rng.choice(["append", "append", "remove", "reposition", "relocate", "reorder"])
        if op == "append" or not ids:
            counter += 1
            ledger.append(item(f"T{counter}", rng.choice(list(Column))))
        elif op == "remove":
            ledger.remove(rng.choice(ids))
        elif op == "reposition":
            ledger.reposition(rng.choice(ids), rng.randint(-1, len(ids) + 2))
        elif op == "relocate":
            target = ledger.get(rng.choice(ids))
            others = [c for c in Column if c != target.column]
            position = rng.choice([None, rng.randint(0, len(ids) + 2)])
            ledger.relocate(target.task_id, rng.choice(others), position)
        else:
            column = rng.choice(list(Column))
            members = [i.task_id for i in ledger.column_items(column)]
            if members:
                rng.shuffle(members)
                ledger.bulk_reorder(column, members)
        assert ledger.violations() == {}
