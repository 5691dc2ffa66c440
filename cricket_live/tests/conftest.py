"""Shared test fixtures for the live cricket pipeline tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from cricket_live.config import RuleConfig
from cricket_live.data.models import (
    CreateMatchRequest,
    CreatePlayerRequest,
    CreateTeamRequest,
    Match,
    PlayerRole,
    VenueConditions,
)
from cricket_live.data.storage import EntityStore, KeyValueStore
from cricket_live.data.store import MatchDataStore, MatchSession


class FakeClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def entities() -> EntityStore:
    db = EntityStore(":memory:")
    yield db
    db.close()


@pytest.fixture
def kv(tmp_path: Path) -> KeyValueStore:
    return KeyValueStore(tmp_path / "state.json")


@pytest.fixture
def store(entities: EntityStore, kv: KeyValueStore) -> MatchDataStore:
    return MatchDataStore(entities, MatchSession(kv))


@pytest.fixture
def squads(store: MatchDataStore) -> dict[str, str]:
    """Two teams, each with a batsman, a bowler and an all-rounder."""
    ids: dict[str, str] = {}
    for prefix, name in (("a", "Thunder"), ("b", "Strikers")):
        bat = store.create_player(CreatePlayerRequest(f"{name} Bat", PlayerRole.BATSMAN))
        bowl = store.create_player(CreatePlayerRequest(f"{name} Bowl", PlayerRole.BOWLER))
        ar = store.create_player(CreatePlayerRequest(f"{name} AllRound", PlayerRole.ALL_ROUNDER))
        team = store.create_team(CreateTeamRequest(name, [bat.id, bowl.id, ar.id]))
        ids[f"team_{prefix}"] = team.id
        ids[f"{prefix}_bat"] = bat.id
        ids[f"{prefix}_bowl"] = bowl.id
        ids[f"{prefix}_ar"] = ar.id
    return ids


@pytest.fixture
def match(store: MatchDataStore, squads: dict[str, str]) -> Match:
    return store.create_match(CreateMatchRequest(
        team_a_id=squads["team_a"],
        team_b_id=squads["team_b"],
        venue=VenueConditions(name="Test Ground"),
        total_overs=20,
    ))


@pytest.fixture
def rule_config() -> RuleConfig:
    return RuleConfig(cooldown_ms=500)
