"""Remaining-uses ledger for friendly moves.

A ledger maps unit id -> move name -> ``[remaining, max]``. Simulations
work on a private :meth:`PPLedger.copy`; only an activated schedule writes
its spent uses back through :meth:`PPLedger.commit`.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, List, Mapping, Tuple

from .models import FriendlyUnit, MovePool

Snapshot = Dict[str, Dict[str, Tuple[int, int]]]
Deltas = Dict[str, Dict[str, int]]


class PPLedger:
    def __init__(self, default_max: int = 12) -> None:
        self.default_max = max(1, int(default_max))
        self._entries: Dict[str, Dict[str, List[int]]] = {}

    @classmethod
    def for_units(cls, units: Iterable[FriendlyUnit], default_max: int = 12) -> "PPLedger":
        ledger = cls(default_max)
        for unit in units:
            ledger.seed(unit)
        return ledger

    def seed(self, unit: FriendlyUnit) -> None:
        """Register ``unit``'s move pool without touching known entries."""

        moves = self._entries.setdefault(unit.id, {})
        for slot in unit.move_pool:
            if slot.name not in moves:
                max_uses = slot.max_uses or self.default_max
                moves[slot.name] = [min(slot.remaining_uses or 0, max_uses), max_uses]

    def _entry(self, unit_id: str, move: str) -> List[int]:
        moves = self._entries.setdefault(unit_id, {})
        if move not in moves:
            moves[move] = [self.default_max, self.default_max]
        return moves[move]

    def remaining(self, unit_id: str, move: str) -> int:
        entry = self._entries.get(unit_id, {}).get(move)
        return self.default_max if entry is None else entry[0]

    def max_uses(self, unit_id: str, move: str) -> int:
        entry = self._entries.get(unit_id, {}).get(move)
        return self.default_max if entry is None else entry[1]

    def has(self, unit_id: str, move: str) -> bool:
        return self.remaining(unit_id, move) > 0

    def set(self, unit_id: str, move: str, remaining: int) -> None:
        entry = self._entry(unit_id, move)
        entry[0] = max(0, min(entry[1], int(remaining)))

    def spend(self, unit_id: str, move: str) -> int:
        """Use ``move`` once and return the uses left."""

        entry = self._entry(unit_id, move)
        entry[0] = max(0, entry[0] - 1)
        return entry[0]

    def pool_view(self, unit: FriendlyUnit) -> MovePool:
        """``unit``'s move pool with remaining uses taken from this ledger."""

        return tuple(
            replace(
                slot,
                max_uses=self.max_uses(unit.id, slot.name),
                remaining_uses=self.remaining(unit.id, slot.name),
            )
            for slot in unit.move_pool
        )

    def snapshot(self) -> Snapshot:
        return {
            unit_id: {move: (entry[0], entry[1]) for move, entry in moves.items()}
            for unit_id, moves in self._entries.items()
        }

    def restore(self, snapshot: Snapshot) -> None:
        self._entries = {
            unit_id: {move: [cur, max_uses] for move, (cur, max_uses) in moves.items()}
            for unit_id, moves in snapshot.items()
        }

    def copy(self) -> "PPLedger":
        clone = PPLedger(self.default_max)
        clone.restore(self.snapshot())
        return clone

    def deltas_since(self, snapshot: Snapshot) -> Deltas:
        """Uses spent per unit and move since ``snapshot`` (zero entries omitted)."""

        out: Deltas = {}
        for unit_id, moves in self._entries.items():
            for move, (cur, max_uses) in moves.items():
                before = snapshot.get(unit_id, {}).get(move, (max_uses, max_uses))[0]
                spent = before - cur
                if spent:
                    out.setdefault(unit_id, {})[move] = spent
        return out

    def commit(self, deltas: Mapping[str, Mapping[str, int]]) -> None:
        for unit_id, moves in deltas.items():
            for move, spent in moves.items():
                entry = self._entry(unit_id, move)
                entry[0] = max(0, min(entry[1], entry[0] - spent))

    def undo(self, deltas: Mapping[str, Mapping[str, int]]) -> None:
        for unit_id, moves in deltas.items():
            for move, spent in moves.items():
                entry = self._entry(unit_id, move)
                entry[0] = max(0, min(entry[1], entry[0] + spent))

    def as_dict(self) -> Dict[str, Dict[str, Dict[str, int]]]:
        return {
            unit_id: {move: {"cur": cur, "max": max_uses} for move, (cur, max_uses) in moves.items()}
            for unit_id, moves in self.snapshot().items()
        }


def total_spent(deltas: Mapping[str, Mapping[str, int]]) -> int:
    return sum(spent for moves in deltas.values() for spent in moves.values())


__all__ = ["Deltas", "PPLedger", "Snapshot", "total_spent"]
