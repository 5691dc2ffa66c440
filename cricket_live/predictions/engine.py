"""
Prediction engine.

Heuristic, stateless estimates from the ball-by-ball history in the
match store: next-ball outcome, wicket and boundary chances, win
probability, batting order and bowling picks. Nothing here is persisted
and the store is never written to.

All probabilities are percentages in [0, 100]; confidences are in [0, 1].
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from cricket_live.config import BALLS_PER_OVER, MAX_WICKETS
from cricket_live.data.models import BallEvent, Match, MatchStatus, PlayerRole, WicketType
from cricket_live.data.store import EntityNotFoundError, MatchDataStore

logger = logging.getLogger(__name__)

RECENT_BALLS = 30

# Dismissal kinds considered when guessing how a batsman gets out
LIKELY_DISMISSALS = (WicketType.CAUGHT, WicketType.BOWLED, WicketType.LBW, WicketType.RUN_OUT)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class NextBallOutcome(Enum):
    DOT = "DOT"
    SINGLE = "SINGLE"
    BOUNDARY = "BOUNDARY"
    WICKET = "WICKET"


@dataclass
class PlayerForm:
    player_id: str
    recent_runs: int
    recent_balls: int
    strike_rate: float
    recent_wickets: int
    form_score: float  # 0-100


@dataclass
class MatchContext:
    current_score: int
    current_wickets: int
    overs_remaining: float
    current_run_rate: float
    required_run_rate: float


@dataclass
class NextBallPrediction:
    outcome: NextBallOutcome
    probability: float
    confidence: float
    reasoning: str
    probabilities: dict[NextBallOutcome, float] = field(default_factory=dict)


@dataclass
class WicketPrediction:
    probability: float
    most_likely_type: WicketType
    confidence: float


@dataclass
class BoundaryPrediction:
    four_probability: float
    six_probability: float
    total_probability: float
    confidence: float


@dataclass
class WinPrediction:
    team_a_win_probability: float
    team_b_win_probability: float
    draw_probability: float
    confidence: float
    factors: list[str]


@dataclass
class BattingOrderRecommendation:
    player_id: str
    position: int
    score: float
    reasoning: str


@dataclass
class BowlingRecommendation:
    player_id: str
    score: float
    reasoning: str
    expected_wickets: float
    expected_economy: float


@dataclass
class ZoneWeakness:
    area: str  # OFF_SIDE / LEG_SIDE / STRAIGHT / SHORT / FULL
    weakness: float  # 0-1, higher = weaker
    dismissal_rate: float


@dataclass
class PlayerWeakZones:
    player_id: str
    zones: list[ZoneWeakness]


# area -> (weakness weight, dismissal rate scale). No ball-position data
# exists, so every zone is a fixed share of the overall dismissal rate.
ZONE_WEIGHTS = (
    ("OFF_SIDE", 0.3, 100),
    ("LEG_SIDE", 0.2, 80),
    ("STRAIGHT", 0.15, 60),
    ("SHORT", 0.25, 70),
    ("FULL", 0.1, 50),
)


def analyze_form(player_id: str, events: list[BallEvent]) -> PlayerForm:
    """Form over a slice of recent deliveries (strike rate, volume, survival)."""
    runs = sum(e.runs for e in events)
    balls = len(events)
    wickets = sum(1 for e in events if e.is_wicket)
    strike_rate = (runs / balls) * 100 if balls > 0 else 0.0
    if balls > 0:
        form_score = min(strike_rate * 0.5 + runs / 10 * 0.3 + (balls - wickets) / balls * 20, 100)
    else:
        form_score = 0.0
    return PlayerForm(
        player_id=player_id,
        recent_runs=runs,
        recent_balls=balls,
        strike_rate=strike_rate,
        recent_wickets=wickets,
        form_score=form_score,
    )


def get_match_context(match: Match) -> MatchContext:
    """Batting side's position in the match: run rates and overs left."""
    score, wickets = match.score_for(match.batting_team_id)
    overs_played = match.current_over + match.current_ball / BALLS_PER_OVER
    overs_remaining = max(match.total_overs - overs_played, 0.0)
    current_run_rate = score / overs_played if overs_played > 0 else 0.0

    required_run_rate = 0.0
    if match.current_innings >= 2 and overs_remaining > 0:
        target, _ = match.score_for(match.bowling_team_id)
        required_run_rate = max(target + 1 - score, 0) / overs_remaining

    return MatchContext(
        current_score=score,
        current_wickets=wickets,
        overs_remaining=overs_remaining,
        current_run_rate=current_run_rate,
        required_run_rate=required_run_rate,
    )


class PredictionEngine:
    def __init__(self, store: MatchDataStore):
        self.store = store

    def _batsman_form(self, player_id: str) -> PlayerForm:
        return analyze_form(player_id, self.store.get_batsman_events(player_id)[-RECENT_BALLS:])

    def _bowler_form(self, player_id: str) -> PlayerForm:
        return analyze_form(player_id, self.store.get_bowler_events(player_id)[-RECENT_BALLS:])

    # ── Probability heuristics (fractions) ───────────────────────────

    @staticmethod
    def _dot(batsman: PlayerForm) -> float:
        return _clamp(0.4 - batsman.form_score / 200, 0.2, 0.5)

    @staticmethod
    def _single(batsman: PlayerForm) -> float:
        return _clamp(0.3 + batsman.form_score / 300, 0.2, 0.4)

    @staticmethod
    def _boundary(batsman: PlayerForm) -> float:
        return _clamp(batsman.strike_rate / 500, 0.05, 0.25)

    @staticmethod
    def _wicket(bowler: PlayerForm) -> float:
        return _clamp(0.1 + bowler.recent_wickets / 30, 0.05, 0.2)

    @staticmethod
    def _confidence(probabilities: list[float]) -> float:
        """How far the leading outcome stands clear of the rest."""
        top = max(probabilities)
        variance = sum((p - top) ** 2 for p in probabilities) / len(probabilities)
        return _clamp(1 - variance, 0.5, 0.95)

    @staticmethod
    def _reasoning(outcome: NextBallOutcome, batsman: PlayerForm, bowler: PlayerForm) -> str:
        if outcome == NextBallOutcome.DOT:
            return f"Bowler in good form ({bowler.form_score:.0f}/100)"
        if outcome == NextBallOutcome.SINGLE:
            return f"Batsman rotating strike well (SR: {batsman.strike_rate:.1f})"
        if outcome == NextBallOutcome.BOUNDARY:
            return f"Batsman aggressive (SR: {batsman.strike_rate:.1f})"
        return f"Bowler taking wickets ({bowler.recent_wickets} recent)"

    # ── Predictions ──────────────────────────────────────────────────

    def _require_match(self, match_id: str) -> None:
        if self.store.get_match(match_id) is None:
            raise EntityNotFoundError("matches", match_id)

    def predict_next_ball(self, match_id: str, batsman_id: str, bowler_id: str) -> NextBallPrediction:
        self._require_match(match_id)
        batsman = self._batsman_form(batsman_id)
        bowler = self._bowler_form(bowler_id)

        fractions = {
            NextBallOutcome.DOT: self._dot(batsman),
            NextBallOutcome.SINGLE: self._single(batsman),
            NextBallOutcome.BOUNDARY: self._boundary(batsman),
            NextBallOutcome.WICKET: self._wicket(bowler),
        }
        # max() keeps the first of equal values, so ties go to the earlier outcome
        outcome = max(fractions, key=fractions.get)
        return NextBallPrediction(
            outcome=outcome,
            probability=fractions[outcome] * 100,
            confidence=self._confidence(list(fractions.values())),
            reasoning=self._reasoning(outcome, batsman, bowler),
            probabilities={k: v * 100 for k, v in fractions.items()},
        )

    def predict_wicket(self, match_id: str, batsman_id: str, bowler_id: str) -> WicketPrediction:
        self._require_match(match_id)
        bowler = self._bowler_form(bowler_id)
        counts = Counter(
            e.wicket_type
            for e in self.store.get_batsman_events(batsman_id)
            if e.is_wicket and e.wicket_type in LIKELY_DISMISSALS
        )
        most_likely = WicketType.CAUGHT
        best = 0
        for wicket_type in LIKELY_DISMISSALS:
            if counts[wicket_type] > best:
                most_likely, best = wicket_type, counts[wicket_type]
        return WicketPrediction(
            probability=self._wicket(bowler) * 100,
            most_likely_type=most_likely,
            confidence=0.7,
        )

    def predict_boundary(self, match_id: str, batsman_id: str, bowler_id: str) -> BoundaryPrediction:
        self._require_match(match_id)
        recent = self.store.get_batsman_events(batsman_id)[-RECENT_BALLS:]
        balls = len(recent) or 1
        fours = sum(1 for e in recent if e.runs == 4) / balls
        sixes = sum(1 for e in recent if e.runs == 6) / balls
        return BoundaryPrediction(
            four_probability=min(fours * 100, 100),
            six_probability=min(sixes * 100, 100),
            total_probability=min((fours + sixes) * 100, 100),
            confidence=0.75,
        )

    def predict_winner(self, match_id: str) -> WinPrediction:
        match = self.store.get_match(match_id)
        if match is None:
            raise EntityNotFoundError("matches", match_id)

        context = get_match_context(match)
        factors = [
            f"Team A: {match.team_a_score}/{match.team_a_wickets}",
            f"Team B: {match.team_b_score}/{match.team_b_wickets}",
            f"Current run rate: {context.current_run_rate:.2f}",
            f"Required run rate: {context.required_run_rate:.2f}",
        ]

        if match.status == MatchStatus.COMPLETED:
            if match.team_a_score > match.team_b_score:
                return WinPrediction(100.0, 0.0, 0.0, 1.0, factors + ["Result: Team A won"])
            if match.team_b_score > match.team_a_score:
                return WinPrediction(0.0, 100.0, 0.0, 1.0, factors + ["Result: Team B won"])
            return WinPrediction(50.0, 50.0, 100.0, 1.0, factors + ["Result: scores level"])

        team_a = 50.0
        if match.status == MatchStatus.IN_PROGRESS:
            score_ratio = match.team_a_score / (match.team_b_score or 1)
            wicket_factor = (MAX_WICKETS - match.team_a_wickets) / MAX_WICKETS
            team_a = _clamp(score_ratio * 40 + wicket_factor * 10, 10, 90)
        return WinPrediction(
            team_a_win_probability=team_a,
            team_b_win_probability=100 - team_a,
            draw_probability=0.0,
            confidence=0.65,
            factors=factors,
        )

    # ── Team selection ───────────────────────────────────────────────

    def get_best_batting_order(self, team_id: str) -> list[BattingOrderRecommendation]:
        recommendations = []
        for player in self.store.get_team_players(team_id):
            stats = player.batting_stats
            score = (
                stats.average * 0.3
                + stats.strike_rate * 0.3
                + stats.runs / 100 * 0.2
                + (20 if stats.dismissals > 0 else 0)
            )
            recommendations.append(BattingOrderRecommendation(
                player_id=player.id,
                position=0,
                score=score,
                reasoning=f"Avg: {stats.average:.1f}, SR: {stats.strike_rate:.1f}",
            ))
        recommendations.sort(key=lambda r: r.score, reverse=True)
        for position, rec in enumerate(recommendations, start=1):
            rec.position = position
        return recommendations

    def get_best_bowling_option(self, team_id: str, batsman_id: Optional[str] = None) -> BowlingRecommendation:
        recommendations = []
        for player in self.store.get_team_players(team_id):
            if player.role not in (PlayerRole.BOWLER, PlayerRole.ALL_ROUNDER):
                continue
            stats = player.bowling_stats
            score = stats.wickets * 10
            if stats.economy > 0:
                score += (10 - stats.economy) * 5
            if stats.average > 0:
                score += 50 - stats.average
            recommendations.append(BowlingRecommendation(
                player_id=player.id,
                score=score,
                reasoning=f"{stats.wickets} wickets, {stats.economy:.2f} economy",
                expected_wickets=stats.wickets / (stats.innings or 1),
                expected_economy=stats.economy,
            ))

        if not recommendations:
            return BowlingRecommendation("", 0.0, "No bowlers available", 0.0, 0.0)
        return max(recommendations, key=lambda r: r.score)

    def get_player_weak_zones(self, player_id: str) -> PlayerWeakZones:
        """Directional weakness approximated from the overall dismissal rate."""
        events = self.store.get_player_history(player_id)
        total = len(events)
        rate = sum(1 for e in events if e.is_wicket) / total if total else 0.0
        return PlayerWeakZones(
            player_id=player_id,
            zones=[ZoneWeakness(area, rate * weight, rate * scale) for area, weight, scale in ZONE_WEIGHTS],
        )
