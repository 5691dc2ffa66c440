"""
Live scoring engine.

Owns the lifecycle of the one live match: start it, apply rule engine
events ball by ball, switch innings when the overs run out, end it.
Every event is written to the match store first; the in-memory LiveScore
is a projection for broadcast views and is never the source of truth.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Callable, Optional

from cricket_live.config import BALLS_PER_OVER, ScoringConfig
from cricket_live.data.models import (
    BallOutcome,
    CameraDetectionMetadata,
    CreateMatchRequest,
    EventSource,
    LogBallEventRequest,
    VenueConditions,
)
from cricket_live.data.storage import KeyValueStore
from cricket_live.data.store import MatchDataStore
from cricket_live.rules.engine import CricketEvent, DismissalEvent, ScoringEvent

logger = logging.getLogger(__name__)


class NoActiveMatchError(RuntimeError):
    def __init__(self) -> None:
        super().__init__("No active match")


class MatchAlreadyLiveError(RuntimeError):
    """A match is already live on this engine."""


class Side(Enum):
    TEAM_A = "TEAM_A"
    TEAM_B = "TEAM_B"


class UpdateType(Enum):
    RUNS = "RUNS"
    WICKET = "WICKET"
    OVER_COMPLETE = "OVER_COMPLETE"
    MATCH_END = "MATCH_END"


@dataclass
class LiveScore:
    match_id: str
    team_a_id: str
    team_b_id: str
    total_overs: int
    team_a_score: int = 0
    team_b_score: int = 0
    team_a_wickets: int = 0
    team_b_wickets: int = 0
    current_over: int = 0
    current_ball: int = 0
    batting_team: Side = Side.TEAM_A
    current_batsman_id: Optional[str] = None
    current_bowler_id: Optional[str] = None
    last_event: Optional[str] = None
    is_live: bool = True

    @property
    def batting_team_id(self) -> str:
        return self.team_a_id if self.batting_team == Side.TEAM_A else self.team_b_id

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["batting_team"] = self.batting_team.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LiveScore":
        payload = dict(data)
        payload["batting_team"] = Side(payload["batting_team"])
        return cls(**payload)


@dataclass(frozen=True)
class ScoreUpdate:
    type: UpdateType
    timestamp: float
    runs: Optional[int] = None
    wickets: Optional[int] = None
    dismissal_type: Optional[str] = None


ScoreListener = Callable[[LiveScore], None]
UpdateListener = Callable[[ScoreUpdate], None]


class LiveScoringEngine:
    """Applies rule engine events to the live match.

    States: no match -> live -> ended. Only one match is live per
    instance; construct another engine for a concurrent match.
    """

    def __init__(
        self,
        store: MatchDataStore,
        kv: KeyValueStore,
        config: Optional[ScoringConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.kv = kv
        self.config = config or ScoringConfig()
        self._clock = clock
        self._live_score: Optional[LiveScore] = None
        self._score_listeners: list[ScoreListener] = []
        self._update_listeners: list[UpdateListener] = []

    # ── Lifecycle ────────────────────────────────────────────────────

    def start_match(
        self,
        team_a_id: str,
        team_b_id: str,
        total_overs: Optional[int] = None,
        venue: Optional[VenueConditions] = None,
    ) -> LiveScore:
        if self._live_score is not None and self._live_score.is_live:
            raise MatchAlreadyLiveError(f"Match {self._live_score.match_id} is already live")

        total_overs = total_overs or self.config.total_overs
        match = self.store.create_match(CreateMatchRequest(
            team_a_id=team_a_id,
            team_b_id=team_b_id,
            venue=venue or VenueConditions(name=self.config.default_venue),
            total_overs=total_overs,
        ))
        self.store.start_match(match.id)

        self._live_score = LiveScore(
            match_id=match.id,
            team_a_id=team_a_id,
            team_b_id=team_b_id,
            total_overs=total_overs,
        )
        logger.info("Live match %s started (%d overs)", match.id, total_overs)
        self._save()
        self._notify_score()
        return self.get_live_score()

    def end_match(self) -> None:
        if not self.is_live:
            raise NoActiveMatchError()

        self.store.finish_match(self._live_score.match_id)
        self._live_score.is_live = False
        logger.info(
            "Live match %s ended: %d/%d vs %d/%d",
            self._live_score.match_id,
            self._live_score.team_a_score, self._live_score.team_a_wickets,
            self._live_score.team_b_score, self._live_score.team_b_wickets,
        )
        self._notify_update(ScoreUpdate(UpdateType.MATCH_END, self._clock()))
        self._notify_score()
        self._save()

    @property
    def is_live(self) -> bool:
        return self._live_score is not None and self._live_score.is_live

    # ── Event processing ─────────────────────────────────────────────

    def process_event(self, event: CricketEvent, batsman_id: str, bowler_id: str) -> None:
        """Record one rule engine event as a delivery and advance the ball."""
        if not self.is_live:
            raise NoActiveMatchError()
        score = self._live_score

        if isinstance(event, ScoringEvent):
            self._apply_scoring(score, event, batsman_id, bowler_id)
        elif isinstance(event, DismissalEvent):
            self._apply_dismissal(score, event, batsman_id, bowler_id)
        else:
            raise TypeError(f"Unsupported event: {event!r}")

        score.current_batsman_id = batsman_id
        score.current_bowler_id = bowler_id
        self._advance_ball(score)

        if score.is_live:
            self._save()
            self._notify_score()

    def _log_delivery(self, request: LogBallEventRequest) -> None:
        self.store.log_ball_event(request)
        self.store.update_player_stats(request.batsman_id)
        self.store.update_player_stats(request.bowler_id)

    def _apply_scoring(self, score: LiveScore, event: ScoringEvent, batsman_id: str, bowler_id: str) -> None:
        boundary = event.boundary_type.value if event.boundary_type else None
        self._log_delivery(LogBallEventRequest(
            match_id=score.match_id,
            batsman_id=batsman_id,
            bowler_id=bowler_id,
            runs=event.runs,
            outcome=BallOutcome.RUNS,
            source=EventSource.CAMERA_DETECTION,
            metadata=CameraDetectionMetadata(confidence=event.confidence, boundary_type=boundary),
        ))

        if score.batting_team == Side.TEAM_A:
            score.team_a_score += event.runs
        else:
            score.team_b_score += event.runs
        score.last_event = f"{event.runs} runs ({boundary})"
        self._notify_update(ScoreUpdate(UpdateType.RUNS, self._clock(), runs=event.runs))

    def _apply_dismissal(self, score: LiveScore, event: DismissalEvent, batsman_id: str, bowler_id: str) -> None:
        self._log_delivery(LogBallEventRequest(
            match_id=score.match_id,
            batsman_id=batsman_id,
            bowler_id=bowler_id,
            runs=0,
            outcome=BallOutcome.WICKET,
            is_wicket=True,
            wicket_type=event.dismissal_type,
            dismissed_player_id=batsman_id,
            fielder_ids=list(event.fielder_ids) if event.fielder_ids else None,
            source=EventSource.CAMERA_DETECTION,
            metadata=CameraDetectionMetadata(
                confidence=event.confidence,
                dismissal_type=event.dismissal_type.value,
            ),
        ))

        if score.batting_team == Side.TEAM_A:
            score.team_a_wickets += 1
        else:
            score.team_b_wickets += 1
        score.last_event = f"Wicket! {event.dismissal_type.value}"
        self._notify_update(ScoreUpdate(
            UpdateType.WICKET, self._clock(), wickets=1, dismissal_type=event.dismissal_type.value,
        ))

    def _advance_ball(self, score: LiveScore) -> None:
        score.current_ball += 1
        if score.current_ball < BALLS_PER_OVER:
            return

        score.current_ball = 0
        score.current_over += 1
        self._notify_update(ScoreUpdate(UpdateType.OVER_COMPLETE, self._clock()))

        if score.current_over >= score.total_overs:
            self._switch_innings(score)

    def _switch_innings(self, score: LiveScore) -> None:
        if score.batting_team == Side.TEAM_B:
            self.end_match()
            return

        self.store.switch_innings(score.match_id)
        score.batting_team = Side.TEAM_B
        score.current_over = 0
        score.current_ball = 0
        score.last_event = "Innings complete - Team B batting"
        logger.info("Match %s: innings complete, Team B batting", score.match_id)

    # ── Snapshot / persistence ───────────────────────────────────────

    def get_live_score(self) -> Optional[LiveScore]:
        return replace(self._live_score) if self._live_score else None

    def _save(self) -> None:
        if self.config.auto_save and self._live_score is not None:
            self.kv.set(KeyValueStore.LIVE_SCORE, self._live_score.to_dict())

    def load_saved(self) -> Optional[LiveScore]:
        """Resume the last persisted LiveScore, if any."""
        saved = self.kv.get(KeyValueStore.LIVE_SCORE)
        if not saved:
            return None
        self._live_score = LiveScore.from_dict(saved)
        logger.info("Resumed live score for match %s", self._live_score.match_id)
        return self.get_live_score()

    def clear_saved(self) -> None:
        self.kv.remove(KeyValueStore.LIVE_SCORE)

    # ── Subscriptions ────────────────────────────────────────────────

    def on_score_update(self, listener: ScoreListener) -> Callable[[], None]:
        self._score_listeners.append(listener)
        return lambda: self._unsubscribe(self._score_listeners, listener)

    def on_event_update(self, listener: UpdateListener) -> Callable[[], None]:
        self._update_listeners.append(listener)
        return lambda: self._unsubscribe(self._update_listeners, listener)

    @staticmethod
    def _unsubscribe(listeners: list, listener: Callable) -> None:
        if listener in listeners:
            listeners.remove(listener)

    def _notify_score(self) -> None:
        if self._live_score is None:
            return
        for listener in list(self._score_listeners):
            listener(self.get_live_score())

    def _notify_update(self, update: ScoreUpdate) -> None:
        for listener in list(self._update_listeners):
            listener(update)
