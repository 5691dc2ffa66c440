"""
Cricket rule engine.

Interprets per-frame detections into discrete cricket events. Tracks the
ball's recent trajectory, checks dismissal conditions first and scoring
conditions second, and emits at most one event per cooldown window so a
single physical event seen over many frames is only counted once.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from cricket_live.config import RuleConfig
from cricket_live.data.models import WicketType
from cricket_live.detection.types import AllDetections, Detection, Point
from cricket_live.rules.zones import (
    Zones,
    bbox_intersect,
    distance,
    project_trajectory,
    trajectory_intersects,
)

logger = logging.getLogger(__name__)

# Event confidence per rule
BOUNDARY_CONFIDENCE = 0.85
BOWLED_CONFIDENCE = 0.9
CAUGHT_CONFIDENCE = 0.75
LBW_CONFIDENCE = 0.65  # projection-based, weakest evidence


class BoundaryType(Enum):
    FOUR = "FOUR"
    SIX = "SIX"


@dataclass(frozen=True)
class ScoringEvent:
    runs: int
    confidence: float
    timestamp: float
    boundary_type: Optional[BoundaryType] = None

    type = "SCORING"


@dataclass(frozen=True)
class DismissalEvent:
    dismissal_type: WicketType
    confidence: float
    timestamp: float
    fielder_ids: Optional[tuple[str, ...]] = None

    type = "DISMISSAL"


CricketEvent = Union[ScoringEvent, DismissalEvent]


@dataclass(frozen=True)
class BallPosition:
    x: float
    y: float
    timestamp: float
    touched_ground: bool

    @property
    def point(self) -> Point:
        return Point(self.x, self.y)


class RuleEngine:
    """Stateful detection -> event interpreter (one instance per match feed)."""

    def __init__(self, config: Optional[RuleConfig] = None, clock: Callable[[], float] = time.time):
        self.config = config or RuleConfig()
        self.zones = Zones.from_config(self.config)
        self._clock = clock
        self._trajectory: deque[BallPosition] = deque(maxlen=self.config.max_trajectory_history)
        self._last_event: Optional[CricketEvent] = None
        self._last_event_time: Optional[float] = None

    def process_detections(self, detections: AllDetections) -> Optional[CricketEvent]:
        now = self._clock()
        if self._in_cooldown(now):
            return None

        if detections.frame_size is not None:
            self._fit_zones(*detections.frame_size)
        if detections.ball is not None:
            self._track_ball(detections.ball, now)

        event = self._detect_dismissal(detections, now) or self._detect_scoring(now)
        if event is not None:
            self._last_event = event
            self._last_event_time = now
            self._trajectory.clear()
            logger.info("Rule engine event: %s", event)
        return event

    def _fit_zones(self, width: int, height: int) -> None:
        if (width, height) == (self.zones.frame_width, self.zones.frame_height):
            return
        self.zones = Zones.for_frame(self.config, width, height)
        logger.info("Rule zones fitted to %dx%d frame", width, height)

    def _in_cooldown(self, now: float) -> bool:
        if self._last_event_time is None:
            return False
        return (now - self._last_event_time) * 1000 < self.config.cooldown_ms

    def _track_ball(self, ball: Detection, now: float) -> None:
        center = ball.center
        self._trajectory.append(BallPosition(
            x=center.x,
            y=center.y,
            timestamp=now,
            touched_ground=self.zones.is_on_ground(center),
        ))

    def _touched_ground(self) -> bool:
        return any(pos.touched_ground for pos in self._trajectory)

    # ── Scoring ──────────────────────────────────────────────────────

    def _detect_scoring(self, now: float) -> Optional[ScoringEvent]:
        if len(self._trajectory) < self.config.min_trajectory_points:
            return None
        if not any(self.zones.is_boundary(pos.point) for pos in self._trajectory):
            return None

        if self._touched_ground():
            return ScoringEvent(4, BOUNDARY_CONFIDENCE, now, BoundaryType.FOUR)
        return ScoringEvent(6, BOUNDARY_CONFIDENCE, now, BoundaryType.SIX)

    # ── Dismissals (bowled, caught, lbw in that order) ───────────────

    def _detect_dismissal(self, detections: AllDetections, now: float) -> Optional[DismissalEvent]:
        if detections.ball is None:
            return None
        return (
            self._detect_bowled(detections, now)
            or self._detect_caught(detections, now)
            or self._detect_lbw(detections, now)
        )

    def _detect_bowled(self, detections: AllDetections, now: float) -> Optional[DismissalEvent]:
        ball = detections.ball
        if any(bbox_intersect(ball.bbox, stump.bbox) for stump in detections.stumps):
            return DismissalEvent(WicketType.BOWLED, BOWLED_CONFIDENCE, now)
        return None

    def _detect_caught(self, detections: AllDetections, now: float) -> Optional[DismissalEvent]:
        ball_center = detections.ball.center
        near_fielder = next(
            (
                p for p in detections.players
                if not p.is_batsman and distance(ball_center, p.center) < self.config.catch_distance
            ),
            None,
        )
        if near_fielder is None or self._touched_ground():
            return None
        return DismissalEvent(WicketType.CAUGHT, CAUGHT_CONFIDENCE, now)

    def _detect_lbw(self, detections: AllDetections, now: float) -> Optional[DismissalEvent]:
        if not detections.stumps:
            return None
        batsman = next((p for p in detections.players if p.is_batsman), None)
        if batsman is None:
            return None
        if distance(detections.ball.center, batsman.center) >= self.config.hit_distance:
            return None

        projected = project_trajectory(
            [pos.point for pos in self._trajectory], self.config.projection_steps,
        )
        if any(trajectory_intersects(projected, stump.bbox) for stump in detections.stumps):
            return DismissalEvent(WicketType.LBW, LBW_CONFIDENCE, now)
        return None

    # ── Accessors ────────────────────────────────────────────────────

    def get_trajectory(self) -> list[BallPosition]:
        return list(self._trajectory)

    def clear_trajectory(self) -> None:
        self._trajectory.clear()

    def get_last_event(self) -> Optional[CricketEvent]:
        return self._last_event

    def reset(self) -> None:
        """Forget trajectory, last event and cooldown."""
        self._trajectory.clear()
        self._last_event = None
        self._last_event_time = None
