"""Type effectiveness lookups."""
from __future__ import annotations

from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any, Dict, Iterable, Mapping, Tuple


def to_fraction(value: Any) -> Fraction:
    """Convert JSON numbers to exact fractions (``0.5`` becomes ``1/2``)."""

    if isinstance(value, Fraction):
        return value
    return Fraction(str(value))


@dataclass(frozen=True)
class TypeChart:
    """Attacking type -> defending type -> factor. Missing entries mean 1."""

    chart: Mapping[str, Mapping[str, Fraction]] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Mapping[str, Any]]) -> "TypeChart":
        chart: Dict[str, Dict[str, Fraction]] = {}
        for attack_type, row in raw.items():
            if not isinstance(row, Mapping):
                continue
            chart[attack_type] = {
                defend_type: to_fraction(factor) for defend_type, factor in row.items()
            }
        return cls(chart)

    @property
    def types(self) -> Tuple[str, ...]:
        seen = set(self.chart)
        for row in self.chart.values():
            seen.update(row)
        return tuple(sorted(seen))

    def factor(self, attack_type: str, defend_type: str) -> Fraction:
        return self.chart.get(attack_type, {}).get(defend_type, Fraction(1))

    def effectiveness(self, attack_type: str | None, def_types: Iterable[str]) -> Fraction:
        """Product of the per-type factors; a typeless move is neutral."""

        if not attack_type:
            return Fraction(1)
        result = Fraction(1)
        for defend_type in def_types:
            result *= self.factor(attack_type, defend_type)
        return result


__all__ = ["TypeChart", "to_fraction"]
