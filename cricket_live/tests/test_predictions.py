"""Tests for the prediction engine."""

from __future__ import annotations

import pytest

from cricket_live.data.models import (
    BallOutcome,
    BattingStats,
    BowlingStats,
    CreatePlayerRequest,
    CreateTeamRequest,
    LogBallEventRequest,
    PlayerRole,
    WicketType,
)
from cricket_live.data.store import EntityNotFoundError
from cricket_live.predictions.engine import (
    NextBallOutcome,
    PredictionEngine,
    analyze_form,
    get_match_context,
)


@pytest.fixture
def predictions(store) -> PredictionEngine:
    return PredictionEngine(store)


def deliver(store, match, squads, runs: int = 0, wicket: WicketType = None) -> None:
    store.log_ball_event(LogBallEventRequest(
        match_id=match.id,
        batsman_id=squads["a_bat"],
        bowler_id=squads["b_bowl"],
        runs=runs,
        outcome=BallOutcome.WICKET if wicket else BallOutcome.RUNS,
        is_wicket=wicket is not None,
        wicket_type=wicket,
        dismissed_player_id=squads["a_bat"] if wicket else None,
    ))


class TestNextBall:
    def test_no_history_predicts_dot(self, predictions, squads, match):
        prediction = predictions.predict_next_ball(match.id, squads["a_bat"], squads["b_bowl"])

        assert prediction.outcome == NextBallOutcome.DOT
        assert prediction.probability == pytest.approx(40.0)
        assert prediction.confidence == pytest.approx(0.944375)
        assert prediction.reasoning == "Bowler in good form (0/100)"

    def test_ranges(self, predictions, store, squads, match):
        for runs in (6, 0, 4, 1):
            deliver(store, match, squads, runs)
        prediction = predictions.predict_next_ball(match.id, squads["a_bat"], squads["b_bowl"])

        assert 0 <= prediction.probability <= 100
        assert 0 <= prediction.confidence <= 1
        assert all(0 <= p <= 100 for p in prediction.probabilities.values())
        assert prediction.probability == max(prediction.probabilities.values())

    def test_in_form_batsman_rotates_strike(self, predictions, store, squads, match):
        for _ in range(10):
            deliver(store, match, squads, 6)
        prediction = predictions.predict_next_ball(match.id, squads["a_bat"], squads["b_bowl"])

        assert prediction.outcome == NextBallOutcome.SINGLE
        assert prediction.probability == pytest.approx(40.0)
        assert prediction.reasoning == "Batsman rotating strike well (SR: 600.0)"

    def test_unknown_match(self, predictions, squads):
        with pytest.raises(EntityNotFoundError):
            predictions.predict_next_ball("missing", squads["a_bat"], squads["b_bowl"])
        with pytest.raises(EntityNotFoundError):
            predictions.predict_wicket("missing", squads["a_bat"], squads["b_bowl"])
        with pytest.raises(EntityNotFoundError):
            predictions.predict_boundary("missing", squads["a_bat"], squads["b_bowl"])


class TestWicketAndBoundary:
    def test_most_likely_dismissal(self, predictions, store, squads, match):
        deliver(store, match, squads, wicket=WicketType.LBW)
        deliver(store, match, squads, wicket=WicketType.LBW)
        deliver(store, match, squads, wicket=WicketType.CAUGHT)

        prediction = predictions.predict_wicket(match.id, squads["a_bat"], squads["b_bowl"])
        assert prediction.most_likely_type == WicketType.LBW
        assert prediction.probability == pytest.approx(20.0)
        assert prediction.confidence == 0.7

    def test_default_dismissal(self, predictions, squads, match):
        prediction = predictions.predict_wicket(match.id, squads["a_bat"], squads["b_bowl"])
        assert prediction.most_likely_type == WicketType.CAUGHT
        assert prediction.probability == pytest.approx(10.0)

    def test_boundary_rates(self, predictions, store, squads, match):
        for runs in (4, 4, 6, 1):
            deliver(store, match, squads, runs)

        prediction = predictions.predict_boundary(match.id, squads["a_bat"], squads["b_bowl"])
        assert prediction.four_probability == pytest.approx(50.0)
        assert prediction.six_probability == pytest.approx(25.0)
        assert prediction.total_probability == pytest.approx(75.0)

    def test_boundary_without_history(self, predictions, squads, match):
        prediction = predictions.predict_boundary(match.id, squads["a_bat"], squads["b_bowl"])
        assert prediction.total_probability == 0


class TestWinner:
    def test_not_started(self, predictions, match):
        prediction = predictions.predict_winner(match.id)
        assert prediction.team_a_win_probability == 50.0
        assert prediction.team_b_win_probability == 50.0
        assert prediction.confidence == 0.65

    def test_in_progress_clamped(self, predictions, store, match):
        store.start_match(match.id)
        store.update_match(match.id, team_a_score=100)

        prediction = predictions.predict_winner(match.id)
        assert prediction.team_a_win_probability == 90
        assert prediction.team_b_win_probability == 10

    def test_completed(self, predictions, store, match):
        store.update_match(match.id, team_a_score=120, team_b_score=100)
        store.finish_match(match.id)

        prediction = predictions.predict_winner(match.id)
        assert (prediction.team_a_win_probability, prediction.team_b_win_probability) == (100.0, 0.0)
        assert prediction.confidence == 1.0

    def test_completed_tie(self, predictions, store, match):
        store.update_match(match.id, team_a_score=100, team_b_score=100)
        store.finish_match(match.id)

        prediction = predictions.predict_winner(match.id)
        assert prediction.draw_probability == 100.0

    def test_chase_context(self, store, match):
        store.update_match(match.id, team_a_score=120)
        store.switch_innings(match.id)
        chasing = store.update_match(match.id, team_b_score=60, current_over=10)

        context = get_match_context(chasing)
        assert context.current_score == 60
        assert context.overs_remaining == 10
        assert context.current_run_rate == 6.0
        assert context.required_run_rate == pytest.approx(6.1)

    def test_first_innings_has_no_required_rate(self, store, match):
        context = get_match_context(store.update_match(match.id, team_a_score=30, current_over=3))
        assert context.required_run_rate == 0.0
        assert context.current_run_rate == 10.0


class TestSelection:
    def test_batting_order(self, predictions, store, squads):
        store.update_player(squads["a_bat"], batting_stats=BattingStats(
            innings=10, not_outs=2, runs=500, average=40, strike_rate=150,
        ))
        store.update_player(squads["a_ar"], batting_stats=BattingStats(
            innings=5, not_outs=5, runs=200, average=20, strike_rate=100,
        ))

        order = predictions.get_best_batting_order(squads["team_a"])
        assert [r.player_id for r in order] == [squads["a_bat"], squads["a_ar"], squads["a_bowl"]]
        assert [r.position for r in order] == [1, 2, 3]
        assert order[0].score == pytest.approx(78.0)

    def test_bowling_option(self, predictions, store, squads):
        store.update_player(squads["a_bowl"], bowling_stats=BowlingStats(
            innings=5, wickets=10, economy=6.0, average=20.0,
        ))
        store.update_player(squads["a_ar"], bowling_stats=BowlingStats(
            innings=2, wickets=2, economy=8.0, average=30.0,
        ))

        best = predictions.get_best_bowling_option(squads["team_a"], squads["b_bat"])
        assert best.player_id == squads["a_bowl"]
        assert best.score == pytest.approx(150.0)
        assert best.expected_wickets == 2.0

    def test_no_bowlers(self, predictions, store):
        batsman = store.create_player(CreatePlayerRequest("Only Bat", PlayerRole.BATSMAN))
        team = store.create_team(CreateTeamRequest("Batters", [batsman.id]))

        best = predictions.get_best_bowling_option(team.id)
        assert best.reasoning == "No bowlers available"
        assert best.score == 0.0

    def test_weak_zones(self, predictions, store, squads, match):
        for runs in (1, 2, 0):
            deliver(store, match, squads, runs)
        deliver(store, match, squads, wicket=WicketType.BOWLED)

        zones = {z.area: z for z in predictions.get_player_weak_zones(squads["a_bat"]).zones}
        assert set(zones) == {"OFF_SIDE", "LEG_SIDE", "STRAIGHT", "SHORT", "FULL"}
        assert zones["OFF_SIDE"].weakness == pytest.approx(0.075)
        assert zones["OFF_SIDE"].dismissal_rate == pytest.approx(25.0)


class TestForm:
    def test_empty(self):
        form = analyze_form("p1", [])
        assert form.form_score == 0.0
        assert form.strike_rate == 0.0
