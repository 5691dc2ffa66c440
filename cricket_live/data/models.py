"""
Match data model.

Players, teams, matches and the ball-by-ball events that flow from the
rule engine (or manual input) into the match store. Every entity
serializes to a JSON-compatible dict and back without loss.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt_from_str(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


# ── Enums ────────────────────────────────────────────────────────────


class PlayerRole(Enum):
    BATSMAN = "BATSMAN"
    BOWLER = "BOWLER"
    ALL_ROUNDER = "ALL_ROUNDER"
    WICKET_KEEPER = "WICKET_KEEPER"


class MatchStatus(Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"


class BallOutcome(Enum):
    RUNS = "RUNS"
    WICKET = "WICKET"
    NO_BALL = "NO_BALL"
    WIDE = "WIDE"
    BYE = "BYE"
    LEG_BYE = "LEG_BYE"

    @property
    def is_legal(self) -> bool:
        """Wides and no-balls do not count toward the over."""
        return self not in (BallOutcome.WIDE, BallOutcome.NO_BALL)


class WicketType(Enum):
    BOWLED = "BOWLED"
    CAUGHT = "CAUGHT"
    LBW = "LBW"
    RUN_OUT = "RUN_OUT"
    STUMPED = "STUMPED"
    HIT_WICKET = "HIT_WICKET"


class EventSource(Enum):
    CAMERA_DETECTION = "CAMERA_DETECTION"
    MANUAL_INPUT = "MANUAL_INPUT"


# ── Event metadata (closed, versioned variants per provenance) ───────


@dataclass(frozen=True)
class CameraDetectionMetadata:
    """Detection context attached to camera-driven events."""
    confidence: float
    boundary_type: Optional[str] = None  # FOUR / SIX
    dismissal_type: Optional[str] = None
    detected_by: str = "rule-engine"
    version: int = 1

    kind = "camera_detection"


@dataclass(frozen=True)
class ManualInputMetadata:
    """Who entered a manual event and why."""
    entered_by: str = ""
    note: str = ""
    version: int = 1

    kind = "manual_input"


EventMetadata = Union[CameraDetectionMetadata, ManualInputMetadata]

_METADATA_KINDS = {
    CameraDetectionMetadata.kind: CameraDetectionMetadata,
    ManualInputMetadata.kind: ManualInputMetadata,
}


def metadata_to_dict(metadata: Optional[EventMetadata]) -> Optional[dict[str, Any]]:
    if metadata is None:
        return None
    data = asdict(metadata)
    data["kind"] = metadata.kind
    return data


def metadata_from_dict(data: Optional[dict[str, Any]]) -> Optional[EventMetadata]:
    if not data:
        return None
    payload = dict(data)
    kind = payload.pop("kind", None)
    cls = _METADATA_KINDS.get(kind)
    if cls is None:
        raise ValueError(f"Unknown event metadata kind: {kind!r}")
    return cls(**payload)


# ── Statistics ───────────────────────────────────────────────────────


@dataclass
class BattingStats:
    matches_played: int = 0
    innings: int = 0
    runs: int = 0
    balls: int = 0
    fours: int = 0
    sixes: int = 0
    highest_score: int = 0
    not_outs: int = 0
    strike_rate: float = 0.0
    average: float = 0.0

    @property
    def dismissals(self) -> int:
        return self.innings - self.not_outs


@dataclass
class BowlingStats:
    matches_played: int = 0
    innings: int = 0
    overs: float = 0.0  # cricket notation: 3.4 = 3 overs, 4 balls
    balls: int = 0
    runs: int = 0
    wickets: int = 0
    maidens: int = 0
    economy: float = 0.0
    average: float = 0.0
    best_figures: str = "0/0"


# ── Core entities ────────────────────────────────────────────────────


@dataclass
class Player:
    id: str
    name: str
    role: PlayerRole
    team_id: Optional[str] = None
    batting_stats: BattingStats = field(default_factory=BattingStats)
    bowling_stats: BowlingStats = field(default_factory=BowlingStats)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role.value,
            "team_id": self.team_id,
            "batting_stats": asdict(self.batting_stats),
            "bowling_stats": asdict(self.bowling_stats),
            "created_at": _dt_to_str(self.created_at),
            "updated_at": _dt_to_str(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Player":
        return cls(
            id=data["id"],
            name=data["name"],
            role=PlayerRole(data["role"]),
            team_id=data.get("team_id"),
            batting_stats=BattingStats(**data.get("batting_stats", {})),
            bowling_stats=BowlingStats(**data.get("bowling_stats", {})),
            created_at=_dt_from_str(data["created_at"]),
            updated_at=_dt_from_str(data["updated_at"]),
        )


@dataclass
class Team:
    id: str
    name: str
    player_ids: list[str] = field(default_factory=list)
    match_history: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "player_ids": list(self.player_ids),
            "match_history": list(self.match_history),
            "created_at": _dt_to_str(self.created_at),
            "updated_at": _dt_to_str(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Team":
        return cls(
            id=data["id"],
            name=data["name"],
            player_ids=list(data.get("player_ids", [])),
            match_history=list(data.get("match_history", [])),
            created_at=_dt_from_str(data["created_at"]),
            updated_at=_dt_from_str(data["updated_at"]),
        )


@dataclass
class VenueConditions:
    name: str
    location: Optional[str] = None
    pitch_type: Optional[str] = None  # HARD / SOFT / GRASSY / DUSTY
    weather: Optional[str] = None  # SUNNY / CLOUDY / RAINY / WINDY
    boundary_distance: Optional[float] = None  # metres
    temperature: Optional[float] = None  # Celsius


@dataclass
class Match:
    id: str
    team_a_id: str
    team_b_id: str
    venue: VenueConditions
    status: MatchStatus = MatchStatus.NOT_STARTED
    current_innings: int = 1
    batting_team_id: str = ""
    bowling_team_id: str = ""
    current_batsman_id: Optional[str] = None
    current_bowler_id: Optional[str] = None
    total_overs: int = 20
    current_over: int = 0
    current_ball: int = 0
    team_a_score: int = 0
    team_b_score: int = 0
    team_a_wickets: int = 0
    team_b_wickets: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    # Set when ball events were edited after logging and the running
    # totals have not been recomputed yet.
    score_stale: bool = False

    @property
    def over_ball_str(self) -> str:
        return f"{self.current_over}.{self.current_ball}"

    def score_for(self, team_id: str) -> tuple[int, int]:
        """(runs, wickets) for one side of the match."""
        if team_id == self.team_a_id:
            return self.team_a_score, self.team_a_wickets
        return self.team_b_score, self.team_b_wickets

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "team_a_id": self.team_a_id,
            "team_b_id": self.team_b_id,
            "venue": asdict(self.venue),
            "status": self.status.value,
            "current_innings": self.current_innings,
            "batting_team_id": self.batting_team_id,
            "bowling_team_id": self.bowling_team_id,
            "current_batsman_id": self.current_batsman_id,
            "current_bowler_id": self.current_bowler_id,
            "total_overs": self.total_overs,
            "current_over": self.current_over,
            "current_ball": self.current_ball,
            "team_a_score": self.team_a_score,
            "team_b_score": self.team_b_score,
            "team_a_wickets": self.team_a_wickets,
            "team_b_wickets": self.team_b_wickets,
            "start_time": _dt_to_str(self.start_time),
            "end_time": _dt_to_str(self.end_time),
            "created_at": _dt_to_str(self.created_at),
            "updated_at": _dt_to_str(self.updated_at),
            "score_stale": self.score_stale,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Match":
        return cls(
            id=data["id"],
            team_a_id=data["team_a_id"],
            team_b_id=data["team_b_id"],
            venue=VenueConditions(**data["venue"]),
            status=MatchStatus(data["status"]),
            current_innings=data["current_innings"],
            batting_team_id=data["batting_team_id"],
            bowling_team_id=data["bowling_team_id"],
            current_batsman_id=data.get("current_batsman_id"),
            current_bowler_id=data.get("current_bowler_id"),
            total_overs=data["total_overs"],
            current_over=data["current_over"],
            current_ball=data["current_ball"],
            team_a_score=data["team_a_score"],
            team_b_score=data["team_b_score"],
            team_a_wickets=data["team_a_wickets"],
            team_b_wickets=data["team_b_wickets"],
            start_time=_dt_from_str(data.get("start_time")),
            end_time=_dt_from_str(data.get("end_time")),
            created_at=_dt_from_str(data["created_at"]),
            updated_at=_dt_from_str(data["updated_at"]),
            score_stale=data.get("score_stale", False),
        )


@dataclass
class BallEvent:
    """A single delivery. Immutable once logged except for manual correction."""

    id: str
    match_id: str
    innings: int
    over: int  # 0-indexed over number
    ball: int  # 0-indexed legal ball within the over
    batsman_id: str
    bowler_id: str
    runs: int = 0
    extras: int = 0
    outcome: BallOutcome = BallOutcome.RUNS
    is_wicket: bool = False
    wicket_type: Optional[WicketType] = None
    dismissed_player_id: Optional[str] = None
    fielder_ids: Optional[list[str]] = None
    source: EventSource = EventSource.MANUAL_INPUT
    timestamp: datetime = field(default_factory=utc_now)
    metadata: Optional[EventMetadata] = None
    batting_team_id: str = ""  # side credited with these runs

    @property
    def total_runs(self) -> int:
        return self.runs + self.extras

    @property
    def is_legal_delivery(self) -> bool:
        return self.outcome.is_legal

    @property
    def is_boundary(self) -> bool:
        return self.runs in (4, 6)

    @property
    def over_ball_str(self) -> str:
        return f"{self.over}.{self.ball}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "match_id": self.match_id,
            "innings": self.innings,
            "over": self.over,
            "ball": self.ball,
            "batsman_id": self.batsman_id,
            "bowler_id": self.bowler_id,
            "runs": self.runs,
            "extras": self.extras,
            "outcome": self.outcome.value,
            "is_wicket": self.is_wicket,
            "wicket_type": self.wicket_type.value if self.wicket_type else None,
            "dismissed_player_id": self.dismissed_player_id,
            "fielder_ids": list(self.fielder_ids) if self.fielder_ids is not None else None,
            "source": self.source.value,
            "timestamp": _dt_to_str(self.timestamp),
            "metadata": metadata_to_dict(self.metadata),
            "batting_team_id": self.batting_team_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BallEvent":
        wicket_type = data.get("wicket_type")
        fielder_ids = data.get("fielder_ids")
        return cls(
            id=data["id"],
            match_id=data["match_id"],
            innings=data["innings"],
            over=data["over"],
            ball=data["ball"],
            batsman_id=data["batsman_id"],
            bowler_id=data["bowler_id"],
            runs=data.get("runs", 0),
            extras=data.get("extras", 0),
            outcome=BallOutcome(data.get("outcome", "RUNS")),
            is_wicket=data.get("is_wicket", False),
            wicket_type=WicketType(wicket_type) if wicket_type else None,
            dismissed_player_id=data.get("dismissed_player_id"),
            fielder_ids=list(fielder_ids) if fielder_ids is not None else None,
            source=EventSource(data.get("source", "MANUAL_INPUT")),
            timestamp=_dt_from_str(data["timestamp"]),
            metadata=metadata_from_dict(data.get("metadata")),
            batting_team_id=data.get("batting_team_id", ""),
        )


# ── Requests ─────────────────────────────────────────────────────────


@dataclass
class CreatePlayerRequest:
    name: str
    role: PlayerRole
    team_id: Optional[str] = None


@dataclass
class CreateTeamRequest:
    name: str
    player_ids: list[str] = field(default_factory=list)


@dataclass
class CreateMatchRequest:
    team_a_id: str
    team_b_id: str
    venue: VenueConditions
    total_overs: Optional[int] = None


@dataclass
class LogBallEventRequest:
    match_id: str
    batsman_id: str
    bowler_id: str
    runs: int
    extras: int = 0
    outcome: BallOutcome = BallOutcome.RUNS
    is_wicket: bool = False
    wicket_type: Optional[WicketType] = None
    dismissed_player_id: Optional[str] = None
    fielder_ids: Optional[list[str]] = None
    source: EventSource = EventSource.MANUAL_INPUT
    metadata: Optional[EventMetadata] = None


# ── Derived views ────────────────────────────────────────────────────


@dataclass
class MatchBatting:
    runs: int
    balls: int
    fours: int
    sixes: int
    strike_rate: float
    is_out: bool
    dismissal: Optional[WicketType] = None


@dataclass
class MatchBowling:
    overs: float
    runs: int
    wickets: int
    economy: float


@dataclass
class MatchStats:
    """One player's contribution to one match."""
    match_id: str
    player_id: str
    batting: Optional[MatchBatting] = None
    bowling: Optional[MatchBowling] = None


@dataclass
class MatchSummary:
    match: Match
    team_a_players: list[Player]
    team_b_players: list[Player]
    total_balls: int
    total_runs: int
    total_wickets: int
    winner: Optional[str] = None  # TEAM_A / TEAM_B / DRAW
    win_margin: Optional[str] = None
