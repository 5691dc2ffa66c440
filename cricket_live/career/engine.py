"""
Career and leaderboard engine.

Rolls each player's cumulative stats from the match store up into a
career record with an AI composite rating, and ranks players across
categories. Career records and leaderboards live in the key-value store
and are reloaded in full on construction.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from cricket_live.data.models import Player, utc_now
from cricket_live.data.storage import KeyValueStore
from cricket_live.data.store import EntityNotFoundError, MatchDataStore

logger = logging.getLogger(__name__)

LEADERBOARD_SIZE = 50
RATING_COMPONENT_CAP = 500


class LeaderboardCategory(Enum):
    RUNS = "RUNS"
    WICKETS = "WICKETS"
    STRIKE_RATE = "STRIKE_RATE"
    AVERAGE = "AVERAGE"
    AI_RATING = "AI_RATING"
    MVP_AWARDS = "MVP_AWARDS"


@dataclass
class CareerStats:
    player_id: str
    player_name: str

    # Batting
    total_matches: int = 0
    total_runs: int = 0
    total_balls: int = 0
    strike_rate: float = 0.0
    average: float = 0.0
    highest_score: int = 0
    centuries: int = 0
    half_centuries: int = 0
    fours: int = 0
    sixes: int = 0

    # Bowling
    total_wickets: int = 0
    bowling_average: float = 0.0
    economy: float = 0.0
    best_figures: str = "0/0"

    # Awards
    mvp_awards: int = 0
    player_of_match: int = 0

    ai_rating: int = 0  # 0-1000
    form_rating: int = 0  # 0-100

    last_updated: datetime = field(default_factory=utc_now)
    created_at: datetime = field(default_factory=utc_now)

    @property
    def all_rounder_score(self) -> int:
        return self.total_runs + self.total_wickets * 50

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["last_updated"] = self.last_updated.isoformat()
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CareerStats":
        payload = dict(data)
        payload["last_updated"] = datetime.fromisoformat(payload["last_updated"])
        payload["created_at"] = datetime.fromisoformat(payload["created_at"])
        return cls(**payload)


@dataclass
class LeaderboardEntry:
    rank: int
    player_id: str
    player_name: str
    value: float
    change: int = 0  # positions gained since the previous build


@dataclass
class Leaderboard:
    category: LeaderboardCategory
    entries: list[LeaderboardEntry]
    last_updated: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "entries": [asdict(e) for e in self.entries],
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Leaderboard":
        return cls(
            category=LeaderboardCategory(data["category"]),
            entries=[LeaderboardEntry(**e) for e in data["entries"]],
            last_updated=datetime.fromisoformat(data["last_updated"]),
        )


@dataclass
class PlayerRanking:
    player_id: str
    batting_rank: int
    bowling_rank: int
    all_rounder_rank: int
    overall_rank: int


_CATEGORY_VALUE: dict[LeaderboardCategory, Callable[[CareerStats], float]] = {
    LeaderboardCategory.RUNS: lambda c: c.total_runs,
    LeaderboardCategory.WICKETS: lambda c: c.total_wickets,
    LeaderboardCategory.STRIKE_RATE: lambda c: c.strike_rate,
    LeaderboardCategory.AVERAGE: lambda c: c.average,
    LeaderboardCategory.AI_RATING: lambda c: c.ai_rating,
    LeaderboardCategory.MVP_AWARDS: lambda c: c.mvp_awards,
}


def _clamp_component(score: float) -> float:
    return max(0.0, min(score, RATING_COMPONENT_CAP))


def calculate_ai_rating(player: Player) -> int:
    """Composite 0-1000: batting and bowling contributions, each clamped to 0-500."""
    batting = player.batting_stats
    bowling = player.bowling_stats

    batting_score = batting.average * 2 + batting.strike_rate * 1.5 + batting.runs / 10
    bowling_score = bowling.wickets * 20
    if bowling.economy > 0:
        bowling_score += (10 - bowling.economy) * 10
    if bowling.average > 0:
        bowling_score += (50 - bowling.average) * 2
    return round(_clamp_component(batting_score) + _clamp_component(bowling_score))


def calculate_form_rating(player: Player) -> int:
    batting = player.batting_stats
    return round(min(batting.strike_rate / 2 + batting.average / 2, 100))


def _rank_of(players: list[CareerStats], player_id: str, key: Callable[[CareerStats], float]) -> int:
    # Ties broken by player id so ranks are always a permutation of 1..N
    ordered = sorted(players, key=lambda c: (-key(c), c.player_id))
    return next(i for i, c in enumerate(ordered, start=1) if c.player_id == player_id)


class CareerEngine:
    def __init__(self, store: MatchDataStore, kv: KeyValueStore):
        self.store = store
        self.kv = kv
        self._careers: dict[str, CareerStats] = {}
        self._leaderboards: dict[LeaderboardCategory, Leaderboard] = {}
        self._load()

    def _load(self) -> None:
        for player_id, data in (self.kv.get(KeyValueStore.CAREER_STATS) or {}).items():
            self._careers[player_id] = CareerStats.from_dict(data)
        for data in (self.kv.get(KeyValueStore.LEADERBOARDS) or {}).values():
            board = Leaderboard.from_dict(data)
            self._leaderboards[board.category] = board
        if self._careers:
            logger.info("Loaded %d career records", len(self._careers))

    def _save_careers(self) -> None:
        self.kv.set(
            KeyValueStore.CAREER_STATS,
            {pid: c.to_dict() for pid, c in self._careers.items()},
        )

    def _save_leaderboards(self) -> None:
        self.kv.set(
            KeyValueStore.LEADERBOARDS,
            {cat.value: board.to_dict() for cat, board in self._leaderboards.items()},
        )

    def update_player_career(self, player_id: str) -> CareerStats:
        """Rebuild the career record from the player's current stats."""
        player = self.store.get_player(player_id)
        if player is None:
            raise EntityNotFoundError("players", player_id)

        batting = player.batting_stats
        bowling = player.bowling_stats
        innings_scores = self.store.get_innings_scores(player_id)
        previous = self._careers.get(player_id)

        career = CareerStats(
            player_id=player.id,
            player_name=player.name,
            total_matches=batting.innings,
            total_runs=batting.runs,
            total_balls=batting.balls,
            strike_rate=batting.strike_rate,
            average=batting.average,
            highest_score=batting.highest_score,
            centuries=sum(1 for s in innings_scores if s >= 100),
            half_centuries=sum(1 for s in innings_scores if 50 <= s < 100),
            fours=batting.fours,
            sixes=batting.sixes,
            total_wickets=bowling.wickets,
            bowling_average=bowling.average,
            economy=bowling.economy,
            best_figures=bowling.best_figures,
            mvp_awards=previous.mvp_awards if previous else 0,
            player_of_match=previous.player_of_match if previous else 0,
            ai_rating=calculate_ai_rating(player),
            form_rating=calculate_form_rating(player),
            created_at=previous.created_at if previous else utc_now(),
        )
        self._careers[player_id] = career
        self._save_careers()
        logger.debug("Career updated for %s: AI rating %d", player.name, career.ai_rating)
        return career

    def get_player_career(self, player_id: str) -> Optional[CareerStats]:
        return self._careers.get(player_id)

    def get_leaderboard(self, category: LeaderboardCategory) -> Leaderboard:
        """Rebuild and return the top 50 for a category."""
        value_of = _CATEGORY_VALUE[category]
        previous = self._leaderboards.get(category)
        previous_ranks = {e.player_id: e.rank for e in previous.entries} if previous else {}

        ordered = sorted(self._careers.values(), key=lambda c: (-value_of(c), c.player_id))
        entries = []
        for rank, career in enumerate(ordered[:LEADERBOARD_SIZE], start=1):
            old_rank = previous_ranks.get(career.player_id)
            entries.append(LeaderboardEntry(
                rank=rank,
                player_id=career.player_id,
                player_name=career.player_name,
                value=value_of(career),
                change=old_rank - rank if old_rank is not None else 0,
            ))

        board = Leaderboard(category=category, entries=entries)
        self._leaderboards[category] = board
        self._save_leaderboards()
        return board

    def get_all_leaderboards(self) -> list[Leaderboard]:
        return [self.get_leaderboard(category) for category in LeaderboardCategory]

    def get_player_ranking(self, player_id: str) -> PlayerRanking:
        if player_id not in self._careers:
            raise EntityNotFoundError("career_stats", player_id)
        players = list(self._careers.values())
        return PlayerRanking(
            player_id=player_id,
            batting_rank=_rank_of(players, player_id, lambda c: c.total_runs),
            bowling_rank=_rank_of(players, player_id, lambda c: c.total_wickets),
            all_rounder_rank=_rank_of(players, player_id, lambda c: c.all_rounder_score),
            overall_rank=_rank_of(players, player_id, lambda c: c.ai_rating),
        )

    def award_mvp(self, player_id: str) -> CareerStats:
        """Increment award counters only; the AI rating is untouched."""
        career = self._careers.get(player_id)
        if career is None:
            raise EntityNotFoundError("career_stats", player_id)
        career.mvp_awards += 1
        career.player_of_match += 1
        career.last_updated = utc_now()
        self._save_careers()
        logger.info("MVP awarded to %s (%d total)", career.player_name, career.mvp_awards)
        return career

    def get_top_players(self, limit: int = 10) -> list[CareerStats]:
        ordered = sorted(self._careers.values(), key=lambda c: (-c.ai_rating, c.player_id))
        return ordered[:limit]

    def clear_all_data(self) -> None:
        self._careers.clear()
        self._leaderboards.clear()
        self.kv.remove(KeyValueStore.CAREER_STATS)
        self.kv.remove(KeyValueStore.LEADERBOARDS)
