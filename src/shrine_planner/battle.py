"""Turn-based simulation of one fight: two attackers against two to four enemies.

A :class:`BattleState` is created by :func:`init_fight` and advanced with
:func:`step_turn` until it is terminal (won, lost or stalled) or waits for a
reinforcement (:func:`choose_reinforcement`). Damage is always the minimum
roll, so a replay of the same inputs produces the same log. The state keeps
a private copy of the PP ledger; :meth:`BattleState.pp_deltas` reports what
the fight spent without touching the caller's ledger.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .config import Settings
from .damage import (
    DamageResult,
    compute_damage_range,
    compute_generic_damage_range,
    effective_speed,
    is_ground_immune,
)
from .data_loader import GameData
from .models import (
    BattleCondition,
    Combatant,
    EnemySlot,
    FriendlyUnit,
    MoveSlot,
    base_key,
    expand_instance_keys,
)
from .move_selector import MISSING_TIER, MoveChoice, candidate_slots, choose_best_move
from .observability import get_logger, metrics
from .pp import Deltas, PPLedger, Snapshot, total_spent
from .threat import Threat, enemy_threat

LOGGER = get_logger(__name__)

FULL_HP = 99.9
_EPSILON = 1e-9


class FightStatus(str, Enum):
    ACTIVE = "active"
    WON = "won"
    LOST = "lost"
    STALLED = "stalled"


class Side(str, Enum):
    ATTACKERS = "atk"
    DEFENDERS = "def"


@dataclass(frozen=True)
class Pending:
    side: Side
    slot_index: int


@dataclass(frozen=True)
class ManualAction:
    move: str
    target: Optional[str] = None


@dataclass(frozen=True)
class ActionRecord:
    """One executed action, kept in :attr:`BattleState.history`."""

    turn: int
    side: Side
    actor: str
    move: str
    targets: Tuple[str, ...]
    damage_pct: Tuple[float, ...]
    priority_tier: Optional[int]
    source: str


@dataclass(frozen=True)
class FightSummary:
    status: FightStatus
    turns: int
    attacker_actions: int
    tier_sum: int
    pp_spent: int

    @property
    def avg_tier(self) -> float:
        if not self.attacker_actions:
            return float(MISSING_TIER)
        return self.tier_sum / self.attacker_actions


@dataclass
class FightContext:
    """Read-only inputs shared by every fight of a wave."""

    data: GameData
    units: Dict[str, FriendlyUnit]
    enemies: Dict[str, EnemySlot]
    settings: Settings = field(default_factory=Settings)

    @classmethod
    def build(
        cls,
        data: GameData,
        units: Iterable[FriendlyUnit],
        enemies: Iterable[EnemySlot],
        settings: Settings | None = None,
    ) -> "FightContext":
        return cls(
            data=data,
            units={unit.id: unit for unit in units},
            enemies={slot.key: slot for slot in enemies},
            settings=settings or Settings(),
        )

    def enemy(self, key: str) -> Optional[EnemySlot]:
        return self.enemies.get(key) or self.enemies.get(base_key(key))


@dataclass
class BattleState:
    context: FightContext
    attackers_active: List[Optional[str]]
    attackers_bench: List[str]
    defenders_active: List[Optional[str]]
    defenders_bench: List[str]
    hp_atk: Dict[str, float]
    hp_def: Dict[str, float]
    ledger: PPLedger
    pp_start: Snapshot = field(default_factory=dict, repr=False)
    manual: Dict[str, ManualAction] = field(default_factory=dict)
    turn: int = 0
    status: FightStatus = FightStatus.ACTIVE
    pending: Optional[Pending] = None
    log: List[str] = field(default_factory=list)
    history: List[ActionRecord] = field(default_factory=list)

    @property
    def terminal(self) -> bool:
        return self.status is not FightStatus.ACTIVE

    def pp_deltas(self) -> Deltas:
        """Uses spent by this fight, per unit and move."""

        return self.ledger.deltas_since(self.pp_start)

    def alive_attackers(self) -> List[str]:
        return [uid for uid in self.attackers_active if uid and self.hp_atk.get(uid, 0) > 0]

    def alive_defenders(self) -> List[str]:
        return [key for key in self.defenders_active if key and self.hp_def.get(key, 0) > 0]

    def summary(self) -> FightSummary:
        tiers = [
            record.priority_tier or MISSING_TIER
            for record in self.history
            if record.side is Side.ATTACKERS
        ]
        return FightSummary(
            status=self.status,
            turns=self.turn,
            attacker_actions=len(tiers),
            tier_sum=sum(tiers),
            pp_spent=total_spent(self.pp_deltas()),
        )

    def as_dict(self) -> dict:
        return {
            "status": self.status.value,
            "turn": self.turn,
            "attackers": {"active": list(self.attackers_active), "bench": list(self.attackers_bench)},
            "defenders": {"active": list(self.defenders_active), "bench": list(self.defenders_bench)},
            "hp_atk": dict(self.hp_atk),
            "hp_def": dict(self.hp_def),
            "pending": (
                {"side": self.pending.side.value, "slot_index": self.pending.slot_index}
                if self.pending
                else None
            ),
            "pp_deltas": self.pp_deltas(),
            "log": list(self.log),
        }


@dataclass
class _Action:
    side: Side
    actor: str
    move: str
    target: Optional[str]
    speed: int
    priority_tier: Optional[int] = None
    source: str = "auto"
    profile: Optional[Mapping[str, object]] = None


@dataclass(frozen=True)
class _Hit:
    side: Side
    key: str
    damage: int
    max_hp: int


def _remaining_pct(hp_pct: float, max_hp: int, damage: int) -> float:
    """HP percent left after ``damage`` from a combatant at ``hp_pct``."""

    if max_hp <= 0:
        return 0.0
    current = max(1, math.floor(max_hp * hp_pct / 100 + _EPSILON))
    left = current - damage
    if left <= 0:
        return 0.0
    return min(100.0, left / max_hp * 100)


def _unique(ids: Iterable[str]) -> List[str]:
    out: List[str] = []
    for value in ids:
        if value and value not in out:
            out.append(value)
    return out


def init_fight(
    context: FightContext,
    attackers: Sequence[str],
    defenders: Sequence[str],
    ledger: PPLedger | None = None,
) -> BattleState:
    """Create the state of a new fight.

    The first two attacker ids and the first two defender keys start active;
    the rest wait on the bench. Repeated defender keys become ``key#2``,
    ``key#3``... instances. ``ledger`` is copied, never mutated.
    """

    attacker_ids = [uid for uid in _unique(attackers) if uid in context.units]
    defender_keys = list(defenders)
    if len(set(defender_keys)) != len(defender_keys):
        defender_keys = list(expand_instance_keys(defender_keys))
    defender_keys = [key for key in defender_keys if context.enemy(key) is not None]

    rules = context.data.rules
    private = ledger.copy() if ledger is not None else PPLedger(rules.default_move_pp)
    for uid in attacker_ids:
        private.seed(context.units[uid])

    state = BattleState(
        context=context,
        attackers_active=list(attacker_ids[:2]),
        attackers_bench=attacker_ids[2:],
        defenders_active=list(defender_keys[:2]),
        defenders_bench=defender_keys[2:],
        hp_atk={uid: context.units[uid].hp_pct for uid in attacker_ids},
        hp_def={key: context.enemy(key).hp_pct for key in defender_keys},  # type: ignore[union-attr]
        ledger=private,
        pp_start=private.snapshot(),
    )
    state.log.append(
        f"Fight started: {', '.join(attacker_ids) or 'no attackers'} vs "
        f"{', '.join(defender_keys) or 'no defenders'}."
    )
    LOGGER.debug(
        "fight_started",
        extra={"event": "fight_started", "attackers": attacker_ids, "defenders": defender_keys},
    )
    return state


def set_manual_action(
    state: BattleState, attacker_id: str, move: str | None, target: str | None = None
) -> None:
    """Force ``attacker_id``'s move (and target); ``move=None`` clears it."""

    if move is None:
        state.manual.pop(attacker_id, None)
        return
    state.manual[attacker_id] = ManualAction(move=move, target=target)


def _ensure_pending(state: BattleState) -> bool:
    for side, active, bench in (
        (Side.DEFENDERS, state.defenders_active, state.defenders_bench),
        (Side.ATTACKERS, state.attackers_active, state.attackers_bench),
    ):
        for index, occupant in enumerate(active):
            if not occupant and bench:
                state.pending = Pending(side, index)
                return True
    state.pending = None
    return False


def choose_reinforcement(state: BattleState, side: Side | str, slot_index: int, chosen: str) -> bool:
    """Fill the pending empty slot with ``chosen`` from that side's bench.

    Returns ``False`` (and changes nothing) when the request does not match
    the pending slot or ``chosen`` is not on the bench.
    """

    side = Side(side)
    pending = state.pending
    if pending is None or pending.side is not side or pending.slot_index != slot_index:
        return False
    if side is Side.ATTACKERS:
        active, bench = state.attackers_active, state.attackers_bench
    else:
        active, bench = state.defenders_active, state.defenders_bench
    if chosen not in bench:
        return False
    bench.remove(chosen)
    while len(active) <= slot_index:
        active.append(None)
    active[slot_index] = chosen
    state.log.append(f"{chosen} joins the fight.")
    _ensure_pending(state)
    return True


class _Simulator:
    """Per-turn helpers bound to one state."""

    def __init__(self, state: BattleState) -> None:
        self.state = state
        self.context = state.context
        self.data = state.context.data
        self.settings = state.context.settings

    # -- combatants -------------------------------------------------------

    def friendly(self, uid: str, hp_atk: Mapping[str, float] | None = None) -> Combatant:
        hp = (hp_atk or self.state.hp_atk).get(uid, 100.0)
        return self.context.units[uid].to_combatant(self.data.rules).at_hp(hp)

    def enemy(self, key: str, hp_def: Mapping[str, float] | None = None) -> Combatant:
        slot = self.context.enemy(key)
        if slot is None:
            raise KeyError(f"Unknown enemy slot {key!r}")
        hp = (hp_def or self.state.hp_def).get(key, 100.0)
        return slot.to_combatant(self.data.rules).at_hp(hp)

    def combatant(self, side: Side, key: str, hp_atk, hp_def) -> Combatant:
        if side is Side.ATTACKERS:
            return self.friendly(key, hp_atk)
        return self.enemy(key, hp_def)

    def name(self, side: Side, key: str) -> str:
        if side is Side.ATTACKERS:
            return self.context.units[key].species
        slot = self.context.enemy(key)
        return f"{slot.species} [{key}]" if slot else key

    # -- damage -------------------------------------------------------------

    def _hit_result(
        self,
        actor_side: Side,
        actor: Combatant,
        target: Combatant,
        move: str,
        profile: Mapping[str, object] | None = None,
    ) -> DamageResult:
        settings = self.settings.for_matchup(actor, target)
        if actor_side is Side.DEFENDERS:
            settings = settings.incoming()
        if profile is not None:
            return compute_generic_damage_range(self.data, actor, target, profile, settings)
        return compute_damage_range(self.data, actor, target, move, settings)

    def _partner_immune(self, partner: Combatant, move: str) -> bool:
        move_def = self.data.moves.get(move)
        if (partner.ability or "").strip().lower() == "telepathy":
            return True
        return bool(move_def and move_def.type == "Ground" and is_ground_immune(partner))

    def _area_results(
        self,
        actor_side: Side,
        actor_key: str,
        move: str,
        hp_atk: Mapping[str, float],
        hp_def: Mapping[str, float],
    ) -> Tuple[List[Tuple[Side, str, DamageResult]], Fraction]:
        """Unspread results of an area move and the spread multiplier that applies."""

        state = self.state
        move_def = self.data.moves.get(move)
        actor = self.combatant(actor_side, actor_key, hp_atk, hp_def)
        if actor_side is Side.ATTACKERS:
            foes = [(Side.DEFENDERS, k) for k in state.defenders_active if k and hp_def.get(k, 0) > 0]
            allies = [
                (Side.ATTACKERS, k)
                for k in state.attackers_active
                if k and k != actor_key and hp_atk.get(k, 0) > 0
            ]
        else:
            foes = [(Side.ATTACKERS, k) for k in state.attackers_active if k and hp_atk.get(k, 0) > 0]
            allies = [
                (Side.DEFENDERS, k)
                for k in state.defenders_active
                if k and k != actor_key and hp_def.get(k, 0) > 0
            ]
        targets = list(foes)
        if move_def is not None and move_def.hits_partner:
            for side, key in allies:
                partner = self.combatant(side, key, hp_atk, hp_def)
                if not self._partner_immune(partner, move):
                    targets.append((side, key))

        raw: List[Tuple[Side, str, DamageResult]] = []
        for side, key in targets:
            target = self.combatant(side, key, hp_atk, hp_def)
            result = self._hit_result(actor_side, actor, target, move)
            if result.ok:
                raw.append((side, key, result))
        damaged = sum(1 for _, _, result in raw if result.min > 0)
        multiplier = self.data.rules.spread_mult if damaged >= 2 else Fraction(1)
        return raw, multiplier

    def area_hits(
        self,
        actor_side: Side,
        actor_key: str,
        move: str,
        hp_atk: Mapping[str, float],
        hp_def: Mapping[str, float],
    ) -> List[_Hit]:
        """Per-target damage of an area move, spread multiplier included."""

        raw, multiplier = self._area_results(actor_side, actor_key, move, hp_atk, hp_def)
        return [
            _Hit(side, key, math.floor(result.min * multiplier), result.max_hp)
            for side, key, result in raw
        ]

    def single_hit(
        self,
        actor_side: Side,
        actor_key: str,
        target_key: str,
        move: str,
        hp_atk: Mapping[str, float],
        hp_def: Mapping[str, float],
        profile: Mapping[str, object] | None = None,
    ) -> Optional[_Hit]:
        target_side = Side.DEFENDERS if actor_side is Side.ATTACKERS else Side.ATTACKERS
        actor = self.combatant(actor_side, actor_key, hp_atk, hp_def)
        target = self.combatant(target_side, target_key, hp_atk, hp_def)
        result = self._hit_result(actor_side, actor, target, move, profile)
        if not result.ok:
            return None
        return _Hit(target_side, target_key, result.min, result.max_hp)

    def is_area(self, move: str) -> bool:
        move_def = self.data.moves.get(move)
        return bool(move_def and move_def.is_area)

    # -- attacker choice ----------------------------------------------------

    def _faints_partner(self, uid: str, move: str) -> bool:
        move_def = self.data.moves.get(move)
        if move_def is None or not move_def.hits_partner or self.settings.allow_friendly_fire:
            return False
        raw, multiplier = self._area_results(
            Side.ATTACKERS, uid, move, self.state.hp_atk, self.state.hp_def
        )
        # Highest roll after spread; partners are already filtered for immunity.
        return any(
            side is Side.ATTACKERS and math.floor(result.max * multiplier) >= result.target_hp
            for side, _, result in raw
        )

    def _best_per_target(
        self, uid: str, targets: Sequence[str], banned: Iterable[str] = ()
    ) -> List[Tuple[str, MoveChoice]]:
        unit = self.context.units[uid]
        banned = set(banned)
        pool = [slot for slot in self.state.ledger.pool_view(unit) if slot.name not in banned]
        attacker = self.friendly(uid)
        picks = []
        for key in targets:
            defender = self.enemy(key)
            selection = choose_best_move(
                self.data, attacker, defender, pool, self.settings.for_matchup(attacker, defender)
            )
            if selection.best is not None:
                picks.append((key, selection.best))
        return picks

    @staticmethod
    def _pick_key(item: Tuple[int, Tuple[str, MoveChoice]]) -> tuple:
        order, (_, choice) = item
        closeness = abs(choice.min_pct - 100) if choice.one_shot else 0.0
        return (not choice.one_shot, choice.priority_tier, closeness, -choice.min_pct, order)

    def auto_pick(
        self, uid: str, targets: Sequence[str], exclude: Iterable[str] = ()
    ) -> Optional[Tuple[str, MoveChoice]]:
        """Best (target, move) for ``uid``, refusing moves that faint its partner."""

        excluded = set(exclude)
        preferred = [key for key in targets if key not in excluded]
        if preferred and len(preferred) < len(targets):
            pick = self._safe_pick(uid, preferred)
            if pick is not None:
                return pick
        return self._safe_pick(uid, targets)

    def _safe_pick(self, uid: str, targets: Sequence[str]) -> Optional[Tuple[str, MoveChoice]]:
        banned: set = set()
        while True:
            picks = self._best_per_target(uid, targets, banned)
            if not picks:
                return None
            _, best = min(enumerate(picks), key=self._pick_key)
            if not self._faints_partner(uid, best[1].move):
                return best
            banned.add(best[1].move)

    def manual_pick(self, uid: str, alive: Sequence[str]) -> Optional[_Action]:
        manual = self.state.manual.get(uid)
        if manual is None or not self.state.ledger.has(uid, manual.move):
            return None
        slot = next((s for s in self.context.units[uid].move_pool if s.name == manual.move), None)
        if slot is None or not slot.enabled:
            return None
        target = None
        if manual.target in alive:
            target = manual.target
        elif manual.target:
            wanted = base_key(manual.target)
            target = next((key for key in alive if base_key(key) == wanted), None)
        if target is None and not self.is_area(manual.move):
            if manual.target:
                return None
            target = alive[0] if alive else None
        return _Action(
            side=Side.ATTACKERS,
            actor=uid,
            move=manual.move,
            target=target,
            speed=effective_speed(self.data, self.friendly(uid)),
            priority_tier=slot.priority_tier,
            source="manual",
        )

    def sturdy_plan(self, attackers: Sequence[str], defenders: Sequence[str]) -> Optional[List[_Action]]:
        """Coordinated plan against a pair where only one defender is protected."""

        if len(attackers) != 2 or len(defenders) != 2 or not self.settings.apply_sturdy:
            return None
        if any(uid in self.state.manual for uid in attackers):
            return None
        protected = [
            key
            for key in defenders
            if self.enemy(key).has(BattleCondition.DAMAGE_REDUCTION_ONCE)
            and self.state.hp_def.get(key, 0) >= FULL_HP
        ]
        if len(protected) != 1:
            return None
        guarded = protected[0]
        exposed = next(key for key in defenders if key != guarded)

        options: Dict[str, List[Tuple[MoveSlot, Optional[str]]]] = {}
        for uid in attackers:
            unit = self.context.units[uid]
            entries: List[Tuple[MoveSlot, Optional[str]]] = []
            for slot in candidate_slots(self.state.ledger.pool_view(unit)):
                move_def = self.data.moves.get(slot.name)
                if move_def is None or not move_def.category or move_def.category == "Status":
                    continue
                if move_def.is_area:
                    entries.append((slot, None))
                else:
                    entries.extend((slot, key) for key in defenders)
            if not entries:
                return None
            options[uid] = entries

        ordered = sorted(
            attackers, key=lambda uid: -effective_speed(self.data, self.friendly(uid))
        )
        best_key = None
        best_plan = None
        first, second = ordered
        for option_a in options[first]:
            for option_b in options[second]:
                plan = ((first, option_a), (second, option_b))
                outcome = self._preview(plan, guarded, exposed)
                if outcome is None:
                    continue
                wins, solo, exposed_dead, chips, guarded_dead, tiers, left, names = outcome
                if not (wins or (exposed_dead and chips)):
                    continue
                key = (not wins, not solo, not exposed_dead, not chips, not guarded_dead, tiers, left, names)
                if best_key is None or key < best_key:
                    best_key, best_plan = key, plan
        if best_plan is None:
            return None
        return [
            _Action(
                side=Side.ATTACKERS,
                actor=uid,
                move=slot.name,
                target=target if target is not None else guarded,
                speed=effective_speed(self.data, self.friendly(uid)),
                priority_tier=slot.priority_tier,
                source="plan",
            )
            for uid, (slot, target) in best_plan
        ]

    def _preview(self, plan, guarded: str, exposed: str) -> Optional[tuple]:
        hp_def = dict(self.state.hp_def)
        hp_atk = dict(self.state.hp_atk)
        exposed_start = hp_def.get(exposed, 0)
        solo = False
        chips = False
        for uid, (slot, target) in plan:
            if self.is_area(slot.name):
                if self._faints_partner(uid, slot.name):
                    return None
                hits = self.area_hits(Side.ATTACKERS, uid, slot.name, hp_atk, hp_def)
            else:
                if hp_def.get(target, 0) <= 0:
                    target = next((k for k in (guarded, exposed) if hp_def.get(k, 0) > 0), None)
                    if target is None:
                        continue
                hit = self.single_hit(Side.ATTACKERS, uid, target, slot.name, hp_atk, hp_def)
                hits = [hit] if hit else []
            for hit in hits:
                maps = hp_def if hit.side is Side.DEFENDERS else hp_atk
                if maps.get(hit.key, 0) <= 0:
                    continue
                maps[hit.key] = _remaining_pct(maps[hit.key], hit.max_hp, hit.damage)
                if hit.key == guarded and hit.damage > 0:
                    chips = True
                if (
                    hit.key == exposed
                    and self.is_area(slot.name)
                    and maps[hit.key] <= 0
                    and _remaining_pct(exposed_start, hit.max_hp, hit.damage) <= 0
                ):
                    solo = True
        exposed_dead = hp_def.get(exposed, 0) <= 0
        guarded_dead = hp_def.get(guarded, 0) <= 0
        tiers = sum(slot.priority_tier for _, (slot, _) in plan)
        left = hp_def.get(exposed, 0) + hp_def.get(guarded, 0)
        names = tuple(slot.name for _, (slot, _) in plan)
        return (exposed_dead and guarded_dead, solo, exposed_dead, chips, guarded_dead, tiers, left, names)

    def attacker_actions(self, attackers: Sequence[str], defenders: Sequence[str]) -> List[_Action]:
        plan = self.sturdy_plan(attackers, defenders)
        if plan is not None:
            return plan

        actions: List[_Action] = []
        auto: List[Tuple[_Action, MoveChoice]] = []
        reserved: List[str] = []
        for uid in attackers:
            action = self.manual_pick(uid, defenders)
            if action is not None:
                actions.append(action)
                if action.target:
                    reserved.append(action.target)
                continue
            exclude = reserved if len(defenders) > 1 else ()
            pick = self.auto_pick(uid, defenders, exclude)
            if pick is None:
                continue
            target, choice = pick
            reserved.append(target)
            auto.append(
                (
                    _Action(
                        side=Side.ATTACKERS,
                        actor=uid,
                        move=choice.move,
                        target=target,
                        speed=effective_speed(self.data, self.friendly(uid)),
                        priority_tier=choice.priority_tier,
                    ),
                    choice,
                )
            )

        if len(defenders) == 1 and self.settings.conserve_pp_single_target and len(auto) > 1:
            # One auto-picking attacker acts on a lone defender; manual actions still go.
            _, keep = min(
                enumerate(auto),
                key=lambda entry: self._pick_key((entry[0], (entry[1][0].target, entry[1][1]))),
            )
            auto = [keep]
        actions.extend(action for action, _ in auto)
        return actions

    # -- defender choice ----------------------------------------------------

    def defender_actions(self, attackers: Sequence[str], defenders: Sequence[str]) -> List[_Action]:
        actions = []
        for key in defenders:
            slot = self.context.enemy(key)
            enemy = self.enemy(key)
            best: Optional[Tuple[tuple, str, Threat]] = None
            for order, uid in enumerate(attackers):
                threat = enemy_threat(self.data, enemy, self.friendly(uid), self.settings, slot.moves)
                if threat is None:
                    continue
                rank = (-threat.avg_pct, -threat.result.max_pct, -threat.result.min_pct, threat.move, order)
                if best is None or rank < best[0]:
                    best = (rank, uid, threat)
            if best is None:
                continue
            _, uid, threat = best
            profile = None
            if threat.assumed:
                profile = {
                    "type": threat.result.move_type,
                    "category": threat.result.category,
                    "power": threat.result.power,
                }
            actions.append(
                _Action(
                    side=Side.DEFENDERS,
                    actor=key,
                    move=threat.move,
                    target=uid,
                    speed=effective_speed(self.data, enemy),
                    source="threat",
                    profile=profile,
                )
            )
        return actions

    # -- execution ----------------------------------------------------------

    def _actor_alive(self, action: _Action) -> bool:
        state = self.state
        if action.side is Side.ATTACKERS:
            return action.actor in state.attackers_active and state.hp_atk.get(action.actor, 0) > 0
        return action.actor in state.defenders_active and state.hp_def.get(action.actor, 0) > 0

    def _faint(self, side: Side, key: str, lines: List[str]) -> None:
        active = self.state.attackers_active if side is Side.ATTACKERS else self.state.defenders_active
        if key in active:
            active[active.index(key)] = None
        lines.append(f"{self.name(side, key)} fainted.")

    def execute(self, action: _Action, lines: List[str]) -> None:
        state = self.state
        if not self._actor_alive(action):
            return
        if action.profile is None and self.is_area(action.move):
            hits = self.area_hits(action.side, action.actor, action.move, state.hp_atk, state.hp_def)
        else:
            foes = state.alive_defenders() if action.side is Side.ATTACKERS else state.alive_attackers()
            target = action.target if action.target in foes else (foes[0] if foes else None)
            if target is None:
                return
            hit = self.single_hit(
                action.side, action.actor, target, action.move, state.hp_atk, state.hp_def, action.profile
            )
            hits = [hit] if hit else []
        if not hits:
            return

        if action.side is Side.ATTACKERS:
            left = state.ledger.spend(action.actor, action.move)
            uses = f" PP {left}/{state.ledger.max_uses(action.actor, action.move)}"
        else:
            uses = ""
        done: List[float] = []
        fainted: List[_Hit] = []
        for hit in hits:
            hp = state.hp_atk if hit.side is Side.ATTACKERS else state.hp_def
            before = hp.get(hit.key, 0)
            hp[hit.key] = _remaining_pct(before, hit.max_hp, hit.damage)
            dealt = before - hp[hit.key]
            done.append(round(dealt, 4))
            lines.append(
                f"{self.name(action.side, action.actor)} used {action.move} on "
                f"{self.name(hit.side, hit.key)} ({dealt:.1f}%).{uses}"
            )
            if hp[hit.key] <= 0:
                fainted.append(hit)
        state.history.append(
            ActionRecord(
                turn=state.turn,
                side=action.side,
                actor=action.actor,
                move=action.move,
                targets=tuple(hit.key for hit in hits),
                damage_pct=tuple(done),
                priority_tier=action.priority_tier,
                source=action.source,
            )
        )
        for hit in fainted:
            self._faint(hit.side, hit.key, lines)

    def order(self, actions: List[_Action]) -> List[_Action]:
        if self.settings.enemy_speed_tie_acts_first:
            rank = {Side.DEFENDERS: 0, Side.ATTACKERS: 1}
        else:
            rank = {Side.ATTACKERS: 0, Side.DEFENDERS: 1}
        return sorted(actions, key=lambda action: (-action.speed, rank[action.side]))


def _remaining(state: BattleState, side: Side) -> int:
    if side is Side.ATTACKERS:
        pool, hp = state.attackers_active + state.attackers_bench, state.hp_atk
    else:
        pool, hp = state.defenders_active + state.defenders_bench, state.hp_def
    return sum(1 for key in pool if key and hp.get(key, 0) > 0)


def step_turn(state: BattleState) -> None:
    """Resolve one turn in place; no-op when terminal or awaiting a reinforcement."""

    if state.terminal or state.pending is not None:
        return
    attackers = state.alive_attackers()
    defenders = state.alive_defenders()
    if not defenders and not _remaining(state, Side.DEFENDERS):
        state.status = FightStatus.WON
        state.log.append("All defenders fainted.")
        return
    if not attackers and not _remaining(state, Side.ATTACKERS):
        state.status = FightStatus.LOST
        state.log.append("All attackers fainted.")
        return
    if (not defenders or not attackers) and _ensure_pending(state):
        return

    state.turn += 1
    cap = state.context.settings.turn_cap
    if state.turn > cap:
        state.status = FightStatus.STALLED
        state.log.append(f"Turn limit reached ({cap}).")
        return

    sim = _Simulator(state)
    actions = sim.attacker_actions(attackers, defenders) if defenders else []
    if attackers:
        actions += sim.defender_actions(attackers, defenders)
    lines = [f"Turn {state.turn}."]
    for action in sim.order(actions):
        sim.execute(action, lines)
    state.log.extend(lines)

    if not _remaining(state, Side.DEFENDERS):
        state.status = FightStatus.WON
        state.log.append("Fight won.")
        return
    if not _remaining(state, Side.ATTACKERS):
        state.status = FightStatus.LOST
        state.log.append("Fight lost.")
        return
    _ensure_pending(state)


def run_fight(state: BattleState) -> BattleState:
    """Auto-play to a terminal state, sending in the first bench member each time."""

    while not state.terminal:
        pending = state.pending
        if pending is not None:
            bench = state.attackers_bench if pending.side is Side.ATTACKERS else state.defenders_bench
            choose_reinforcement(state, pending.side, pending.slot_index, bench[0])
            continue
        step_turn(state)
    metrics.increment("shrine_planner_fights_simulated_total")
    if state.status is FightStatus.STALLED:
        metrics.increment("shrine_planner_fights_stalled_total")
        LOGGER.info(
            "fight_stalled",
            extra={"event": "fight_stalled", "turns": state.turn},
        )
    return state


__all__ = [
    "ActionRecord",
    "BattleState",
    "FightContext",
    "FightStatus",
    "FightSummary",
    "ManualAction",
    "Pending",
    "Side",
    "choose_reinforcement",
    "init_fight",
    "run_fight",
    "set_manual_action",
    "step_turn",
]
