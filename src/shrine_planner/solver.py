"""Wave scheduling: which two attackers fight which defenders.

The search runs in stages. A pair table scores every attacker pair against
every defender pair; :func:`iter_perfect_matchings` splits the eight
defender slots into four fights; the best matchings are expanded into
concrete schedules (one per tied attacker pair), de-duplicated through a
caller-owned ``seen`` set and finally re-scored by simulating every fight on
a private PP ledger. Nothing here mutates the caller's units, enemies or
ledger; :func:`activate_schedule` is the only writer.
"""
from __future__ import annotations

import itertools
import time
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from .battle import FightContext, FightStatus, init_fight, run_fight
from .config import Settings, SolverLimits
from .data_loader import GameData
from .models import (
    EnemySlot,
    FightSpec,
    FriendlyUnit,
    PlanScore,
    Schedule,
    SimulationSummary,
    base_key,
    expand_instance_keys,
)
from .move_selector import MISSING_TIER, MoveChoice, choose_best_move
from .observability import get_logger, metrics
from .pp import Deltas, PPLedger, total_spent

LOGGER = get_logger(__name__)

WAVE_SLOTS = 8
FIGHTS_PER_WAVE = WAVE_SLOTS // 2

Pair = Tuple[str, str]
Matching = Tuple[Pair, ...]


@dataclass(frozen=True)
class FightOption:
    """One attacker pair assigned across one defender pair."""

    attackers: Pair
    defenders: Pair
    one_shots: int
    worst_tier: int
    avg_tier: float
    overkill: float

    @property
    def rank(self) -> Tuple[int, int, float]:
        return (-self.one_shots, self.worst_tier, self.avg_tier)


@dataclass(frozen=True)
class FightLogEntry:
    """Undo record of one activated fight."""

    fight: FightSpec
    status: FightStatus
    pp_deltas: Deltas
    claimed: Tuple[str, ...]
    log: Tuple[str, ...]


# -- pair table -----------------------------------------------------------


class PairTable:
    """Best attacker assignments per defender pair, with a move cache."""

    def __init__(
        self,
        context: FightContext,
        ledger: PPLedger | None = None,
    ) -> None:
        self.context = context
        self.ledger = ledger
        self._moves: Dict[Tuple[str, str], Optional[MoveChoice]] = {}
        self._options: Dict[Pair, Tuple[FightOption, ...]] = {}

    def best_move(self, unit_id: str, defender_key: str) -> Optional[MoveChoice]:
        slot = self.context.enemy(defender_key)
        cache_key = (unit_id, slot.key if slot else defender_key)
        if cache_key not in self._moves:
            self._moves[cache_key] = self._compute(unit_id, slot)
        return self._moves[cache_key]

    def _compute(self, unit_id: str, slot: Optional[EnemySlot]) -> Optional[MoveChoice]:
        if slot is None:
            return None
        data = self.context.data
        unit = self.context.units[unit_id]
        pool = self.ledger.pool_view(unit) if self.ledger is not None else unit.move_pool
        attacker = unit.to_combatant(data.rules)
        defender = slot.to_combatant(data.rules)
        settings = self.context.settings.for_matchup(attacker, defender)
        return choose_best_move(data, attacker, defender, pool, settings).best

    def _assignment(self, attackers: Pair, defenders: Pair) -> FightOption:
        tiers = []
        one_shots = 0
        overkill = 0.0
        for uid, key in zip(attackers, defenders):
            choice = self.best_move(uid, key)
            if choice is None:
                tiers.append(MISSING_TIER)
                overkill += 100.0
                continue
            tiers.append(choice.priority_tier)
            one_shots += int(choice.one_shot)
            overkill += abs(choice.min_pct - 100)
        return FightOption(
            attackers=tuple(sorted(attackers)),  # type: ignore[arg-type]
            defenders=defenders,
            one_shots=one_shots,
            worst_tier=max(tiers),
            avg_tier=sum(tiers) / len(tiers),
            overkill=overkill,
        )

    def options(self, defenders: Pair) -> Tuple[FightOption, ...]:
        """Attacker pairs tied for best against ``defenders``, best overkill first.

        Both cross assignments of each attacker pair are tried and the better
        one kept; ties on (one-shots, worst tier, average tier) all survive.
        """

        key = tuple(sorted(defenders))
        if key in self._options:
            return self._options[key]
        best_per_pair: List[FightOption] = []
        for first, second in itertools.combinations(sorted(self.context.units), 2):
            straight = self._assignment((first, second), key)  # type: ignore[arg-type]
            crossed = self._assignment((second, first), key)  # type: ignore[arg-type]
            best_per_pair.append(
                min((straight, crossed), key=lambda option: (option.rank, option.overkill))
            )
        if not best_per_pair:
            self._options[key] = ()
            return ()
        top = min(option.rank for option in best_per_pair)
        tied = sorted(
            (option for option in best_per_pair if option.rank == top),
            key=lambda option: (option.overkill, option.attackers),
        )
        self._options[key] = tuple(tied)  # type: ignore[index]
        return self._options[key]  # type: ignore[index]


# -- matchings ------------------------------------------------------------


def iter_perfect_matchings(slots: Sequence[str]) -> Iterator[Matching]:
    """Yield every split of ``slots`` into unordered pairs.

    Eight slots give 105 matchings. An odd count yields nothing.
    """

    items = list(slots)
    if not items:
        yield ()
        return
    if len(items) % 2:
        return
    first, rest = items[0], items[1:]
    for index, partner in enumerate(rest):
        remaining = rest[:index] + rest[index + 1 :]
        for tail in iter_perfect_matchings(remaining):
            yield ((first, partner),) + tail


def score_matching(matching: Matching, table: PairTable) -> PlanScore:
    fights = [table.options(pair)[0] for pair in matching]
    return PlanScore(
        neg_one_shots=-sum(fight.one_shots for fight in fights),
        worst_tier=max(fight.worst_tier for fight in fights),
        fights_above_tier1=sum(1 for fight in fights if fight.worst_tier > 1),
        sum_avg_tier=sum(fight.avg_tier for fight in fights),
        overkill=sum(fight.overkill for fight in fights),
    )


def within_slack(score: PlanScore, best: PlanScore, slack: float) -> bool:
    """``score`` ties ``best``: same first three fields, average tier within ``slack``."""

    return tuple(score[:3]) == tuple(best[:3]) and score.sum_avg_tier <= best.sum_avg_tier + slack + 1e-9


def padding_distributions(keys: Sequence[str], limits: SolverLimits) -> List[Tuple[str, ...]]:
    """Slot lists of exactly eight defenders, duplicating enemies to fill the gap."""

    keys = list(keys)[:WAVE_SLOTS]
    missing = WAVE_SLOTS - len(keys)
    if missing <= 0:
        return [tuple(keys)]
    combos = itertools.combinations_with_replacement(keys, missing)
    return [
        expand_instance_keys(keys + [base_key(key) for key in extra])
        for extra in itertools.islice(combos, limits.max_combos)
    ]


def iter_schedule_variants(
    candidates: Iterable[Tuple[PlanScore, Matching]],
    table: PairTable,
    limits: SolverLimits,
    seen: Set[tuple],
) -> Iterator[Schedule]:
    """Expand matchings into concrete schedules, skipping canonical keys in ``seen``."""

    for score, matching in candidates:
        per_fight = [table.options(pair)[: limits.per_fight_variants] for pair in matching]
        for combo in itertools.product(*per_fight):
            schedule = Schedule(
                fights=tuple(
                    FightSpec(attackers=option.attackers, defenders=pair)
                    for option, pair in zip(combo, matching)
                ),
                score=score,
            )
            key = schedule.canonical_key()
            if key in seen:
                continue
            seen.add(key)
            yield schedule


# -- simulation -----------------------------------------------------------


def _schedule_ledger(units: Iterable[FriendlyUnit], ledger: PPLedger | None, default_pp: int) -> PPLedger:
    private = ledger.copy() if ledger is not None else PPLedger(default_pp)
    for unit in units:
        private.seed(unit)
    return private


def simulate_schedule(
    context: FightContext,
    schedule: Schedule,
    ledger: PPLedger | None = None,
) -> SimulationSummary:
    """Auto-play every fight of ``schedule`` in order on one private ledger."""

    private = _schedule_ledger(context.units.values(), ledger, context.data.rules.default_move_pp)
    won = stalled = actions = tier_sum = spent = 0
    for fight in schedule.fights:
        state = run_fight(init_fight(context, fight.attackers, fight.defenders, ledger=private))
        summary = state.summary()
        deltas = state.pp_deltas()
        private.commit(deltas)
        won += int(summary.status is FightStatus.WON)
        stalled += int(summary.status is FightStatus.STALLED)
        actions += summary.attacker_actions
        tier_sum += summary.tier_sum
        spent += total_spent(deltas)
    return SimulationSummary(
        fights_won=won,
        fights_stalled=stalled,
        actions=actions,
        avg_tier=tier_sum / actions if actions else float(MISSING_TIER),
        pp_spent=spent,
    )


def check_schedule(schedule: Schedule, slots: Sequence[str], limits: SolverLimits) -> bool:
    """Every slot is fought exactly once and each fight respects the defender limit."""

    if sorted(schedule.defender_slots) != sorted(slots):
        return False
    return all(
        len(fight.attackers) == 2 and 2 <= len(fight.defenders) <= max(2, limits.defender_limit)
        for fight in schedule.fights
    )


def _rank(schedule: Schedule) -> tuple:
    sim = schedule.simulation
    if sim is None:
        return (1, 0, 0.0, 0, schedule.score, schedule.canonical_key())
    return (0, -sim.fights_won, sim.avg_tier, sim.pp_spent, schedule.score, schedule.canonical_key())


def solve_wave(
    data: GameData,
    enemies: Sequence[EnemySlot],
    units: Sequence[FriendlyUnit],
    settings: Settings | None = None,
    limits: SolverLimits | None = None,
    ledger: PPLedger | None = None,
) -> List[Schedule]:
    """Rank the schedules tied for best on ``enemies``.

    Waves larger than eight slots are truncated. With fewer than two units or
    no enemies the result is empty. ``ledger`` supplies current remaining
    uses and is never modified.
    """

    settings = settings or Settings()
    limits = limits or SolverLimits()
    started = time.perf_counter()
    metrics.increment("shrine_planner_solves_total")
    if len(units) < 2 or not enemies:
        return []
    if len(enemies) > WAVE_SLOTS:
        LOGGER.warning(
            "wave_truncated",
            extra={"event": "wave_truncated", "enemies": len(enemies), "kept": WAVE_SLOTS},
        )
        enemies = list(enemies)[:WAVE_SLOTS]

    context = FightContext.build(data, units, enemies, settings)
    table = PairTable(context, ledger)

    per_distribution: List[Tuple[PlanScore, List[Tuple[PlanScore, Matching]]]] = []
    for slots in padding_distributions([slot.key for slot in enemies], limits):
        scored = sorted(
            ((score_matching(matching, table), matching) for matching in iter_perfect_matchings(slots)),
            key=lambda item: item[0],
        )
        if scored:
            per_distribution.append((scored[0][0], scored))
    if not per_distribution:
        return []

    best = min(score for score, _ in per_distribution)
    candidates = [
        item
        for top, scored in per_distribution
        if within_slack(top, best, limits.slack)
        for item in scored
        if within_slack(item[0], best, limits.slack)
    ]
    candidates.sort(key=lambda item: item[0])

    seen: Set[tuple] = set()
    variants = list(
        itertools.islice(iter_schedule_variants(candidates, table, limits, seen), limits.max_variations)
    )
    metrics.increment("shrine_planner_solve_candidates_total", len(variants))

    simulated = [
        Schedule(fights=schedule.fights, score=schedule.score, simulation=simulate_schedule(context, schedule, ledger))
        for schedule in variants
    ]
    if simulated:
        most_won = max(schedule.simulation.fights_won for schedule in simulated)  # type: ignore[union-attr]
        winners = [s for s in simulated if s.simulation.fights_won == most_won]  # type: ignore[union-attr]
        best_avg = min(s.simulation.avg_tier for s in winners)  # type: ignore[union-attr]
        simulated = [
            s for s in winners if s.simulation.avg_tier <= best_avg + limits.slack + 1e-9  # type: ignore[union-attr]
        ]
    simulated.sort(key=_rank)

    elapsed = time.perf_counter() - started
    metrics.observe("shrine_planner_solve_duration_seconds", elapsed)
    LOGGER.info(
        "wave_solved",
        extra={
            "event": "wave_solved",
            "enemies": len(enemies),
            "units": len(units),
            "candidates": len(variants),
            "schedules": len(simulated),
            "duration_ms": round(elapsed * 1000, 3),
        },
    )
    return simulated


# -- activation -----------------------------------------------------------


def activate_schedule(
    data: GameData,
    schedule: Schedule,
    units: Sequence[FriendlyUnit],
    enemies: Sequence[EnemySlot],
    settings: Settings | None = None,
    ledger: PPLedger | None = None,
    claimed: Set[str] | None = None,
) -> List[FightLogEntry]:
    """Play ``schedule`` for real: commit PP to ``ledger`` and claim fainted defenders.

    Returns one :class:`FightLogEntry` per fight for :func:`undo_fight_log`.
    """

    context = FightContext.build(data, units, enemies, settings)
    ledger = ledger if ledger is not None else PPLedger.for_units(units, data.rules.default_move_pp)
    for unit in units:
        ledger.seed(unit)
    entries: List[FightLogEntry] = []
    for fight in schedule.fights:
        state = run_fight(init_fight(context, fight.attackers, fight.defenders, ledger=ledger))
        deltas = state.pp_deltas()
        ledger.commit(deltas)
        newly: List[str] = []
        if claimed is not None:
            for key in state.hp_def:
                if state.hp_def[key] <= 0 and key not in claimed:
                    claimed.add(key)
                    newly.append(key)
        entries.append(
            FightLogEntry(
                fight=fight,
                status=state.status,
                pp_deltas=deltas,
                claimed=tuple(newly),
                log=tuple(state.log),
            )
        )
        LOGGER.info(
            "fight_activated",
            extra={
                "event": "fight_activated",
                "attackers": list(fight.attackers),
                "defenders": list(fight.defenders),
                "status": state.status.value,
                "pp_spent": total_spent(deltas),
            },
        )
    return entries


def undo_fight_log(entry: FightLogEntry, ledger: PPLedger, claimed: Set[str] | None = None) -> None:
    """Give back the uses an activated fight spent and release its claims."""

    ledger.undo(entry.pp_deltas)
    if claimed is not None:
        for key in entry.claimed:
            claimed.discard(key)


__all__ = [
    "FIGHTS_PER_WAVE",
    "FightLogEntry",
    "FightOption",
    "PairTable",
    "WAVE_SLOTS",
    "activate_schedule",
    "check_schedule",
    "iter_perfect_matchings",
    "iter_schedule_variants",
    "padding_distributions",
    "score_matching",
    "simulate_schedule",
    "solve_wave",
    "within_slack",
]
