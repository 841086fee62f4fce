from __future__ import annotations

from shrine_planner.models import MoveSlot
from shrine_planner.pp import PPLedger, total_spent

from conftest import make_unit


def _ledger() -> PPLedger:
    unit = make_unit("a", moves=(MoveSlot("Strike", max_uses=5), MoveSlot("Wave", max_uses=3, remaining_uses=1)))
    return PPLedger.for_units([unit])


def test_seed_uses_slot_values_and_keeps_existing_entries() -> None:
    ledger = _ledger()
    assert ledger.remaining("a", "Strike") == 5
    assert ledger.remaining("a", "Wave") == 1
    assert ledger.max_uses("a", "Wave") == 3

    ledger.spend("a", "Strike")
    ledger.seed(make_unit("a", moves=(MoveSlot("Strike", max_uses=5),)))
    assert ledger.remaining("a", "Strike") == 4


def test_spend_never_goes_negative() -> None:
    ledger = _ledger()
    assert ledger.spend("a", "Wave") == 0
    assert ledger.spend("a", "Wave") == 0
    assert not ledger.has("a", "Wave")


def test_unknown_entries_use_default_max() -> None:
    ledger = PPLedger(default_max=7)
    assert ledger.remaining("ghost", "Strike") == 7
    ledger.set("ghost", "Strike", 99)
    assert ledger.remaining("ghost", "Strike") == 7


def test_copy_is_independent() -> None:
    ledger = _ledger()
    clone = ledger.copy()
    clone.spend("a", "Strike")
    assert ledger.remaining("a", "Strike") == 5
    assert clone.remaining("a", "Strike") == 4


def test_deltas_commit_and_undo_round_trip() -> None:
    ledger = _ledger()
    before = ledger.snapshot()
    scratch = ledger.copy()
    scratch.spend("a", "Strike")
    scratch.spend("a", "Strike")
    deltas = scratch.deltas_since(before)
    assert deltas == {"a": {"Strike": 2}}
    assert total_spent(deltas) == 2

    ledger.commit(deltas)
    assert ledger.remaining("a", "Strike") == 3
    ledger.undo(deltas)
    assert ledger.snapshot() == before


def test_pool_view_reflects_remaining_uses() -> None:
    ledger = _ledger()
    unit = make_unit("a", moves=(MoveSlot("Strike", max_uses=5),))
    ledger.set("a", "Strike", 0)
    (slot,) = ledger.pool_view(unit)
    assert slot.remaining_uses == 0
    assert not slot.usable
    assert ledger.as_dict()["a"]["Strike"] == {"cur": 0, "max": 5}
