"""Tests for the Match Data Store."""

from __future__ import annotations

import logging

import pytest

from cricket_live.data.models import (
    BallOutcome,
    CreateMatchRequest,
    CreatePlayerRequest,
    CreateTeamRequest,
    EventSource,
    LogBallEventRequest,
    Match,
    MatchStatus,
    PlayerRole,
    VenueConditions,
    WicketType,
)
from cricket_live.data.store import EntityInUseError, EntityNotFoundError, MatchDataStore


def log(store: MatchDataStore, match: Match, batsman: str, bowler: str, runs: int = 0, **kwargs):
    return store.log_ball_event(LogBallEventRequest(
        match_id=match.id, batsman_id=batsman, bowler_id=bowler, runs=runs, **kwargs,
    ))


class TestLogBallEvent:
    def test_six_at_start_of_match(self, store, squads, match):
        """logBallEvent runs=6 at 0.0 -> score +6, ball 1, over 0."""
        log(store, match, squads["a_bat"], squads["b_bowl"], runs=6)

        updated = store.get_match(match.id)
        assert updated.team_a_score == 6
        assert updated.current_ball == 1
        assert updated.current_over == 0

    def test_six_legal_balls_complete_an_over(self, store, squads, match):
        for _ in range(6):
            log(store, match, squads["a_bat"], squads["b_bowl"], runs=1)

        updated = store.get_match(match.id)
        assert updated.current_over == 1
        assert updated.current_ball == 0
        assert updated.team_a_score == 6

    def test_wide_and_no_ball_do_not_advance(self, store, squads, match):
        log(store, match, squads["a_bat"], squads["b_bowl"], extras=1, outcome=BallOutcome.WIDE)
        log(store, match, squads["a_bat"], squads["b_bowl"], runs=2, extras=1, outcome=BallOutcome.NO_BALL)

        updated = store.get_match(match.id)
        assert updated.current_ball == 0
        assert updated.current_over == 0
        assert updated.team_a_score == 4

    def test_event_stamped_with_match_position(self, store, squads, match):
        for _ in range(7):
            event = log(store, match, squads["a_bat"], squads["b_bowl"])
        assert (event.innings, event.over, event.ball) == (1, 1, 0)
        assert event.batting_team_id == squads["team_a"]
        assert isinstance(event.id, str) and event.id

    def test_wicket_counts_against_batting_team(self, store, squads, match):
        log(
            store, match, squads["a_bat"], squads["b_bowl"],
            outcome=BallOutcome.WICKET, is_wicket=True,
            wicket_type=WicketType.BOWLED, dismissed_player_id=squads["a_bat"],
        )
        updated = store.get_match(match.id)
        assert updated.team_a_wickets == 1
        assert updated.team_b_wickets == 0

    def test_score_equals_sum_of_events(self, store, squads, match):
        for runs, extras in [(1, 0), (4, 0), (0, 1), (6, 0), (2, 2)]:
            log(store, match, squads["a_bat"], squads["b_bowl"], runs=runs, extras=extras)
        events = store.get_match_events(match.id)
        assert store.get_match(match.id).team_a_score == sum(e.runs + e.extras for e in events)

    def test_unknown_match_rejected(self, store, squads):
        with pytest.raises(EntityNotFoundError):
            store.log_ball_event(LogBallEventRequest("missing", squads["a_bat"], squads["b_bowl"], 1))

    def test_unknown_player_rejected(self, store, squads, match):
        with pytest.raises(EntityNotFoundError):
            log(store, match, "ghost", squads["b_bowl"], runs=1)
        assert store.get_match_events(match.id) == []

    def test_second_innings_credits_team_b(self, store, squads, match):
        log(store, match, squads["a_bat"], squads["b_bowl"], runs=4)
        store.switch_innings(match.id)
        log(store, match, squads["b_bat"], squads["a_bowl"], runs=6)

        updated = store.get_match(match.id)
        assert updated.current_innings == 2
        assert updated.batting_team_id == squads["team_b"]
        assert (updated.team_a_score, updated.team_b_score) == (4, 6)


class TestManualCorrections:
    def test_edit_flags_score_stale(self, store, squads, match, caplog):
        event = log(store, match, squads["a_bat"], squads["b_bowl"], runs=4)

        with caplog.at_level(logging.WARNING, logger="cricket_live.data.store"):
            store.update_ball_event(event.id, runs=6)

        updated = store.get_match(match.id)
        assert updated.score_stale
        assert updated.team_a_score == 4  # not recomputed
        assert "stale" in caplog.text

    def test_recompute_after_edit(self, store, squads, match):
        event = log(store, match, squads["a_bat"], squads["b_bowl"], runs=4)
        log(store, match, squads["a_bat"], squads["b_bowl"], runs=1)
        store.update_ball_event(event.id, runs=6)

        recomputed = store.recompute_match_score(match.id)
        assert recomputed.team_a_score == 7
        assert not recomputed.score_stale

    def test_recompute_after_delete(self, store, squads, match):
        wicket = log(
            store, match, squads["a_bat"], squads["b_bowl"],
            outcome=BallOutcome.WICKET, is_wicket=True, wicket_type=WicketType.LBW,
        )
        store.switch_innings(match.id)
        log(store, match, squads["b_bat"], squads["a_bowl"], runs=2)

        store.delete_ball_event(wicket.id)
        assert store.get_match(match.id).score_stale

        recomputed = store.recompute_match_score(match.id)
        assert recomputed.team_a_wickets == 0
        assert recomputed.team_b_score == 2

    def test_edit_rejects_unknown_references(self, store, squads, match):
        event = log(store, match, squads["a_bat"], squads["b_bowl"], runs=1)

        for field in ("batsman_id", "bowler_id", "dismissed_player_id", "match_id"):
            with pytest.raises(EntityNotFoundError):
                store.update_ball_event(event.id, **{field: "ghost"})
        stored = store.get_ball_event(event.id)
        assert (stored.match_id, stored.batsman_id, stored.bowler_id) == (match.id, squads["a_bat"], squads["b_bowl"])
        assert stored.dismissed_player_id is None

    def test_edit_missing_event(self, store):
        with pytest.raises(EntityNotFoundError):
            store.update_ball_event("nope", runs=1)


class TestMatchSummary:
    def test_team_a_wins_by_runs(self, store, match):
        store.update_match(match.id, team_a_score=150, team_b_score=120, team_b_wickets=6)
        store.finish_match(match.id)

        summary = store.get_match_summary(match.id)
        assert summary.winner == "TEAM_A"
        assert summary.win_margin == "by 30 runs"

    def test_team_b_wins_by_wickets(self, store, match):
        store.update_match(match.id, team_a_score=120, team_b_score=121, team_b_wickets=4)
        store.finish_match(match.id)

        summary = store.get_match_summary(match.id)
        assert summary.winner == "TEAM_B"
        assert summary.win_margin == "by 6 wickets"

    def test_tie_is_draw(self, store, match):
        store.update_match(match.id, team_a_score=100, team_b_score=100)
        store.finish_match(match.id)
        assert store.get_match_summary(match.id).winner == "DRAW"

    def test_no_winner_while_in_progress(self, store, squads, match):
        store.start_match(match.id)
        log(store, match, squads["a_bat"], squads["b_bowl"], runs=4)

        summary = store.get_match_summary(match.id)
        assert summary.winner is None
        assert summary.total_balls == 1
        assert summary.total_runs == 4
        assert len(summary.team_a_players) == 3


class TestMatchLifecycle:
    def test_create_sets_current_and_history(self, store, squads, match):
        assert store.get_current_match().id == match.id
        assert match.id in store.get_team(squads["team_a"]).match_history
        assert match.id in store.get_team(squads["team_b"]).match_history
        assert match.batting_team_id == squads["team_a"]

    def test_start_and_finish(self, store, match):
        started = store.start_match(match.id)
        assert started.status == MatchStatus.IN_PROGRESS
        assert started.start_time is not None

        finished = store.finish_match(match.id)
        assert finished.status == MatchStatus.COMPLETED
        assert finished.end_time is not None
        assert store.get_current_match() is None

    def test_abandon_clears_pointer(self, store, match):
        store.abandon_match(match.id)
        assert store.get_match(match.id).status == MatchStatus.ABANDONED
        assert store.session.current_match_id is None

    def test_innings_cannot_go_backwards(self, store, match):
        store.switch_innings(match.id)
        with pytest.raises(ValueError):
            store.update_match(match.id, current_innings=1)

    def test_matches_by_status(self, store, match):
        assert [m.id for m in store.get_matches_by_status(MatchStatus.NOT_STARTED)] == [match.id]
        assert store.get_matches_by_status(MatchStatus.COMPLETED) == []

    def test_team_matches(self, store, squads, match):
        second = store.create_match(CreateMatchRequest(
            squads["team_b"], squads["team_a"], VenueConditions(name="Away")
        ))
        ids = {m.id for m in store.get_team_matches(squads["team_a"])}
        assert ids == {match.id, second.id}
        assert second.total_overs == 20

    def test_create_match_with_unknown_team(self, store, squads):
        with pytest.raises(EntityNotFoundError):
            store.create_match(CreateMatchRequest(squads["team_a"], "nope", VenueConditions(name="X")))


class TestPlayersAndTeams:
    def test_update_missing_player(self, store):
        with pytest.raises(EntityNotFoundError):
            store.update_player("missing", name="X")

    def test_create_player_on_team(self, store, squads):
        player = store.create_player(CreatePlayerRequest("New Kid", PlayerRole.BATSMAN, squads["team_a"]))
        assert player.team_id == squads["team_a"]
        assert player.id in store.get_team(squads["team_a"]).player_ids

    def test_add_player_moves_between_teams(self, store, squads):
        store.add_player_to_team(squads["team_b"], squads["a_bat"])

        assert squads["a_bat"] not in store.get_team(squads["team_a"]).player_ids
        assert squads["a_bat"] in store.get_team(squads["team_b"]).player_ids
        assert store.get_player(squads["a_bat"]).team_id == squads["team_b"]

    def test_add_player_twice_keeps_ids_unique(self, store, squads):
        store.add_player_to_team(squads["team_a"], squads["a_bat"])
        assert store.get_team(squads["team_a"]).player_ids.count(squads["a_bat"]) == 1

    def test_remove_player_clears_reference(self, store, squads):
        store.remove_player_from_team(squads["team_a"], squads["a_bowl"])
        assert store.get_player(squads["a_bowl"]).team_id is None
        assert squads["a_bowl"] not in store.get_team(squads["team_a"]).player_ids

    def test_delete_team_clears_player_refs(self, store, squads):
        store.delete_team(squads["team_b"])
        assert store.get_team(squads["team_b"]) is None
        assert store.get_player(squads["b_bat"]).team_id is None

    def test_delete_player_in_use(self, store, squads, match):
        log(store, match, squads["a_bat"], squads["b_bowl"], runs=1)
        with pytest.raises(EntityInUseError):
            store.delete_player(squads["a_bat"])

    def test_delete_unused_player(self, store, squads):
        store.delete_player(squads["a_ar"])
        assert store.get_player(squads["a_ar"]) is None
        assert squads["a_ar"] not in store.get_team(squads["team_a"]).player_ids

    def test_update_player_to_unknown_team(self, store, squads):
        with pytest.raises(EntityNotFoundError):
            store.update_player(squads["a_bat"], team_id="ghost-team")
        assert store.get_player(squads["a_bat"]).team_id == squads["team_a"]

    def test_update_player_team_moves_membership(self, store, squads):
        store.update_player(squads["a_bat"], team_id=squads["team_b"])
        assert squads["a_bat"] not in store.get_team(squads["team_a"]).player_ids
        assert squads["a_bat"] in store.get_team(squads["team_b"]).player_ids

        store.update_player(squads["a_bat"], team_id=None)
        assert squads["a_bat"] not in store.get_team(squads["team_b"]).player_ids

    def test_update_team_players(self, store, squads):
        team = store.update_team(squads["team_a"], player_ids=[squads["a_bat"], squads["b_bat"], squads["a_bat"]])

        assert team.player_ids == [squads["a_bat"], squads["b_bat"]]
        assert store.get_player(squads["b_bat"]).team_id == squads["team_a"]
        assert squads["b_bat"] not in store.get_team(squads["team_b"]).player_ids
        assert store.get_player(squads["a_bowl"]).team_id is None

    def test_update_team_with_unknown_player(self, store, squads):
        with pytest.raises(EntityNotFoundError):
            store.update_team(squads["team_a"], player_ids=["ghost-player"])
        assert len(store.get_team(squads["team_a"]).player_ids) == 3

    def test_update_match_with_unknown_team(self, store, match):
        with pytest.raises(EntityNotFoundError):
            store.update_match(match.id, batting_team_id="ghost-team")
        with pytest.raises(EntityNotFoundError):
            store.update_match(match.id, current_bowler_id="ghost-player")

    def test_search_players(self, store, squads):
        names = {p.name for p in store.search_players("thunder")}
        assert names == {"Thunder Bat", "Thunder Bowl", "Thunder AllRound"}

    def test_players_by_team(self, store, squads):
        ids = {p.id for p in store.get_players_by_team(squads["team_b"])}
        assert ids == {squads["b_bat"], squads["b_bowl"], squads["b_ar"]}

    def test_create_team_with_unknown_player(self, store):
        with pytest.raises(EntityNotFoundError):
            store.create_team(CreateTeamRequest("Ghosts", ["nobody"]))


class TestStatistics:
    def _innings(self, store, squads, match):
        bat, bowl = squads["a_bat"], squads["b_bowl"]
        log(store, match, bat, bowl, runs=4)
        log(store, match, bat, bowl, runs=6)
        log(store, match, bat, bowl, extras=1, outcome=BallOutcome.WIDE)
        log(store, match, bat, bowl, runs=1)
        log(
            store, match, bat, bowl, outcome=BallOutcome.WICKET, is_wicket=True,
            wicket_type=WicketType.CAUGHT, dismissed_player_id=bat,
        )

    def test_extras_ball_counts(self, store, squads, match):
        bat, bowl = squads["a_bat"], squads["b_bowl"]
        log(store, match, bat, bowl, extras=1, outcome=BallOutcome.WIDE)
        log(store, match, bat, bowl, runs=2, extras=1, outcome=BallOutcome.NO_BALL)

        assert store.calculate_batting_stats(bat).balls == 1  # wide not faced
        bowling = store.calculate_bowling_stats(bowl)
        assert bowling.balls == 0
        assert bowling.runs == 4

    def test_batting_stats(self, store, squads, match):
        self._innings(store, squads, match)
        stats = store.calculate_batting_stats(squads["a_bat"])

        assert stats.runs == 11
        assert stats.balls == 4
        assert stats.fours == 1
        assert stats.sixes == 1
        assert stats.strike_rate == 11 / 4 * 100
        assert stats.not_outs == 0
        assert stats.average == 11.0
        assert stats.highest_score == 11

    def test_bowling_stats(self, store, squads, match):
        self._innings(store, squads, match)
        stats = store.calculate_bowling_stats(squads["b_bowl"])

        assert stats.balls == 4
        assert stats.runs == 12
        assert stats.wickets == 1
        assert stats.overs == pytest.approx(0.4)
        assert stats.economy == pytest.approx(30.0)
        assert stats.average == 12.0
        assert stats.best_figures == "1/12"

    def test_strike_rate_zero_without_balls(self, store, squads):
        assert store.calculate_batting_stats(squads["a_bat"]).strike_rate == 0

    def test_not_out_average_is_runs(self, store, squads, match):
        log(store, match, squads["a_bat"], squads["b_bowl"], runs=4)
        log(store, match, squads["a_bat"], squads["b_bowl"], runs=2)
        stats = store.calculate_batting_stats(squads["a_bat"])
        assert stats.not_outs == 1
        assert stats.average == 6.0

    def test_maiden_over(self, store, squads, match):
        for _ in range(6):
            log(store, match, squads["a_bat"], squads["b_bowl"])
        stats = store.calculate_bowling_stats(squads["b_bowl"])
        assert stats.maidens == 1
        assert stats.overs == 1.0
        assert stats.economy == 0.0

    def test_update_player_stats_persists(self, store, squads, match):
        self._innings(store, squads, match)
        store.update_player_stats(squads["a_bat"])
        assert store.get_player(squads["a_bat"]).batting_stats.runs == 11

    def test_match_stats(self, store, squads, match):
        self._innings(store, squads, match)

        batting = store.get_match_stats(match.id, squads["a_bat"])
        assert batting.batting.runs == 11
        assert batting.batting.is_out
        assert batting.batting.dismissal == WicketType.CAUGHT
        assert batting.bowling is None

        bowling = store.get_match_stats(match.id, squads["b_bowl"])
        assert bowling.batting is None
        assert bowling.bowling.wickets == 1

    def test_innings_scores(self, store, squads, match):
        log(store, match, squads["a_bat"], squads["b_bowl"], runs=6)
        other = store.create_match(CreateMatchRequest(
            squads["team_a"], squads["team_b"], VenueConditions(name="Second")
        ))
        log(store, other, squads["a_bat"], squads["b_bowl"], runs=4)
        log(store, other, squads["a_bat"], squads["b_bowl"], runs=4)
        assert store.get_innings_scores(squads["a_bat"]) == [6, 8]


class TestQueries:
    def test_event_filters(self, store, squads, match):
        bat, bowl = squads["a_bat"], squads["b_bowl"]
        log(store, match, bat, bowl, runs=4, source=EventSource.CAMERA_DETECTION)
        log(store, match, bat, bowl, runs=1)
        log(store, match, bat, bowl, outcome=BallOutcome.WICKET, is_wicket=True)

        assert len(store.get_events_by_source(match.id, EventSource.CAMERA_DETECTION)) == 1
        assert len(store.get_wicket_events(match.id)) == 1
        assert [e.runs for e in store.get_boundary_events(match.id)] == [4]
        assert len(store.get_over_events(match.id, 0)) == 3
        assert len(store.get_player_history(bowl)) == 3

    def test_match_events_in_creation_order(self, store, squads, match):
        for runs in (1, 2, 3, 4):
            log(store, match, squads["a_bat"], squads["b_bowl"], runs=runs)
        assert [e.runs for e in store.get_match_events(match.id)] == [1, 2, 3, 4]

    def test_db_stats_export_and_clear(self, store, squads, match):
        log(store, match, squads["a_bat"], squads["b_bowl"], runs=1)

        assert store.get_db_stats() == {
            "player_count": 6, "team_count": 2, "match_count": 1, "event_count": 1,
        }
        exported = store.export_data()
        assert len(exported["ball_events"]) == 1

        store.clear_all_data()
        assert store.get_db_stats()["player_count"] == 0
        assert store.get_current_match() is None
