from __future__ import annotations

from shrine_planner.config import Settings
from shrine_planner.models import BattleCondition, Combatant
from shrine_planner.threat import enemy_threat

STRIKER = Combatant(species="Striker", level=50, iv=31)


def test_threat_disabled_returns_none(game_data) -> None:
    enemy = Combatant(species="Racer", level=50)
    settings = Settings(threat_model_enabled=False)
    assert enemy_threat(game_data, enemy, STRIKER, settings, ["Strike"]) is None


def test_known_moves_pick_highest_average(game_data) -> None:
    enemy = Combatant(species="Racer", level=50)
    threat = enemy_threat(game_data, enemy, STRIKER, Settings(), ["Tap", "Strike"])
    assert threat is not None
    assert threat.move == "Strike"
    assert threat.assumed is False
    assert (threat.result.min, threat.result.max) == (40, 48)


def test_speed_tie_follows_setting(game_data) -> None:
    enemy = Combatant(species="Racer", level=50)
    first = enemy_threat(game_data, enemy, STRIKER, Settings(), ["Strike"])
    assert first.enemy_acts_first is True
    later = enemy_threat(
        game_data, enemy, STRIKER, Settings(enemy_speed_tie_acts_first=False), ["Strike"]
    )
    assert later.enemy_acts_first is False


def test_unknown_moveset_uses_assumed_profile(game_data) -> None:
    enemy = Combatant(species="Target", level=50)
    threat = enemy_threat(game_data, enemy, STRIKER, Settings(enemy_assumed_power=60))
    assert threat is not None
    assert threat.assumed is True
    assert threat.result.power == 60
    assert threat.result.move_type == "Water"
    assert threat.area is False


def test_incoming_hits_ignore_sturdy(game_data) -> None:
    enemy = Combatant(species="Titan", level=50)
    sturdy_friend = Combatant(
        species="Target", level=50, iv=31, conditions={BattleCondition.DAMAGE_REDUCTION_ONCE}
    )
    threat = enemy_threat(game_data, enemy, sturdy_friend, Settings(), ["Big Strike"])
    assert threat.result.one_shot is True
