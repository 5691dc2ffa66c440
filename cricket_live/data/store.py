"""
Match Data Store.

Durable CRUD over players, teams, matches and ball events, plus derived
statistics. This is the single source of truth for scores: the live
scoring engine writes every delivery here before telling anyone about it.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Optional

from cricket_live.config import BALLS_PER_OVER, MAX_WICKETS
from cricket_live.data import stats as stats_calc
from cricket_live.data.models import (
    BallEvent,
    BattingStats,
    BowlingStats,
    CreateMatchRequest,
    CreatePlayerRequest,
    CreateTeamRequest,
    EventSource,
    LogBallEventRequest,
    Match,
    MatchBatting,
    MatchBowling,
    MatchStats,
    MatchStatus,
    MatchSummary,
    Player,
    Team,
    new_id,
    utc_now,
)
from cricket_live.data.storage import EntityStore, KeyValueStore

logger = logging.getLogger(__name__)


class EntityNotFoundError(LookupError):
    """A referenced player/team/match/ball event does not exist."""

    def __init__(self, collection: str, entity_id: str):
        self.collection = collection
        self.entity_id = entity_id
        super().__init__(f"{collection} with ID {entity_id} not found")


class EntityInUseError(ValueError):
    """Deleting an entity that other records still reference."""


class MatchSession:
    """Explicit holder of the "current match" pointer.

    Backed by the key-value store so the pointer survives a restart, but
    passed to the components that need it instead of looked up globally.
    """

    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    @property
    def current_match_id(self) -> Optional[str]:
        return self._kv.get(KeyValueStore.CURRENT_MATCH_ID)

    def set_current(self, match_id: Optional[str]) -> None:
        if match_id is None:
            self._kv.remove(KeyValueStore.CURRENT_MATCH_ID)
        else:
            self._kv.set(KeyValueStore.CURRENT_MATCH_ID, match_id)

    def clear(self) -> None:
        self.set_current(None)


class MatchDataStore:
    """Entity CRUD, ball logging and statistics over an EntityStore."""

    def __init__(self, entities: EntityStore, session: MatchSession):
        self._db = entities
        self.session = session

    # ── Players ──────────────────────────────────────────────────────

    def create_player(self, request: CreatePlayerRequest) -> Player:
        if request.team_id is not None:
            self._require_team(request.team_id)
        player = Player(id=new_id(), name=request.name, role=request.role)
        self._db.add("players", player.to_dict())
        if request.team_id is not None:
            self.add_player_to_team(request.team_id, player.id)
            player = self._require_player(player.id)
        logger.debug("Created player %s (%s)", player.name, player.id)
        return player

    def get_player(self, player_id: str) -> Optional[Player]:
        doc = self._db.get("players", player_id)
        return Player.from_dict(doc) if doc else None

    def update_player(self, player_id: str, **changes: Any) -> Player:
        """Update fields; a team_id change goes through team membership."""
        existing = self._require_player(player_id)
        if "team_id" in changes:
            team_id = changes.pop("team_id")
            if team_id != existing.team_id:
                if team_id is None:
                    self.remove_player_from_team(existing.team_id, player_id)
                else:
                    self.add_player_to_team(team_id, player_id)
                existing = self._require_player(player_id)
        return self._put_player(existing, **changes)

    def _put_player(self, existing: Player, **changes: Any) -> Player:
        changes.pop("id", None)
        changes.pop("created_at", None)
        updated = replace(existing, **changes, updated_at=utc_now())
        self._db.put("players", updated.to_dict())
        return updated

    def delete_player(self, player_id: str) -> None:
        player = self._require_player(player_id)
        if self.get_player_history(player_id):
            raise EntityInUseError(
                f"Player {player_id} is referenced by ball events and cannot be deleted"
            )
        if player.team_id:
            self.remove_player_from_team(player.team_id, player_id)
        self._db.delete("players", player_id)

    def get_all_players(self) -> list[Player]:
        return [Player.from_dict(d) for d in self._db.all("players")]

    def get_players_by_team(self, team_id: str) -> list[Player]:
        return [Player.from_dict(d) for d in self._db.query_by("players", "team_id", team_id)]

    def search_players(self, query: str) -> list[Player]:
        needle = query.lower()
        return [p for p in self.get_all_players() if needle in p.name.lower()]

    def get_player_history(self, player_id: str) -> list[BallEvent]:
        """Every event the player took part in, as batsman or bowler, in order."""
        seen: dict[str, BallEvent] = {}
        for e in self.get_batsman_events(player_id) + self.get_bowler_events(player_id):
            seen[e.id] = e
        return sorted(seen.values(), key=lambda e: e.timestamp)

    # ── Teams ────────────────────────────────────────────────────────

    def create_team(self, request: CreateTeamRequest) -> Team:
        for player_id in request.player_ids:
            self._require_player(player_id)
        team = Team(id=new_id(), name=request.name)
        self._db.add("teams", team.to_dict())
        for player_id in dict.fromkeys(request.player_ids):
            self.add_player_to_team(team.id, player_id)
        return self._require_team(team.id)

    def get_team(self, team_id: str) -> Optional[Team]:
        doc = self._db.get("teams", team_id)
        return Team.from_dict(doc) if doc else None

    def update_team(self, team_id: str, **changes: Any) -> Team:
        """Update fields; a player_ids change goes through team membership."""
        existing = self._require_team(team_id)
        if "player_ids" in changes:
            player_ids = list(dict.fromkeys(changes.pop("player_ids")))
            for player_id in player_ids:
                self._require_player(player_id)
            for player_id in existing.player_ids:
                if player_id not in player_ids:
                    self.remove_player_from_team(team_id, player_id)
            for player_id in player_ids:
                self.add_player_to_team(team_id, player_id)
            changes["player_ids"] = player_ids
            existing = self._require_team(team_id)
        return self._put_team(existing, **changes)

    def _put_team(self, existing: Team, **changes: Any) -> Team:
        changes.pop("id", None)
        changes.pop("created_at", None)
        updated = replace(existing, **changes, updated_at=utc_now())
        self._db.put("teams", updated.to_dict())
        return updated

    def delete_team(self, team_id: str) -> None:
        self._require_team(team_id)
        for player in self.get_players_by_team(team_id):
            self._put_player(player, team_id=None)
        self._db.delete("teams", team_id)

    def get_all_teams(self) -> list[Team]:
        return [Team.from_dict(d) for d in self._db.all("teams")]

    def add_player_to_team(self, team_id: str, player_id: str) -> None:
        """Add a player, moving them out of any team they were in."""
        self._require_team(team_id)
        player = self._require_player(player_id)
        if player.team_id and player.team_id != team_id:
            self.remove_player_from_team(player.team_id, player_id)
        team = self._require_team(team_id)
        if player_id not in team.player_ids:
            self._put_team(team, player_ids=team.player_ids + [player_id])
        self._put_player(self._require_player(player_id), team_id=team_id)

    def remove_player_from_team(self, team_id: str, player_id: str) -> None:
        team = self._require_team(team_id)
        self._put_team(team, player_ids=[p for p in team.player_ids if p != player_id])
        player = self.get_player(player_id)
        if player is not None and player.team_id == team_id:
            self._put_player(player, team_id=None)

    def get_team_players(self, team_id: str) -> list[Player]:
        return self.get_players_by_team(team_id)

    def _add_match_to_history(self, team_id: str, match_id: str) -> None:
        team = self._require_team(team_id)
        if match_id not in team.match_history:
            self.update_team(team_id, match_history=team.match_history + [match_id])

    # ── Matches ──────────────────────────────────────────────────────

    def create_match(self, request: CreateMatchRequest) -> Match:
        self._require_team(request.team_a_id)
        self._require_team(request.team_b_id)
        match = Match(
            id=new_id(),
            team_a_id=request.team_a_id,
            team_b_id=request.team_b_id,
            venue=request.venue,
            batting_team_id=request.team_a_id,  # Team A bats first
            bowling_team_id=request.team_b_id,
            total_overs=request.total_overs or 20,
        )
        self._db.add("matches", match.to_dict())
        self._add_match_to_history(request.team_a_id, match.id)
        self._add_match_to_history(request.team_b_id, match.id)
        self.session.set_current(match.id)
        logger.info("Created match %s (%d overs)", match.id, match.total_overs)
        return match

    def get_match(self, match_id: str) -> Optional[Match]:
        doc = self._db.get("matches", match_id)
        return Match.from_dict(doc) if doc else None

    def update_match(self, match_id: str, **changes: Any) -> Match:
        existing = self._require_match(match_id)
        changes.pop("id", None)
        changes.pop("created_at", None)
        if "current_innings" in changes and changes["current_innings"] < existing.current_innings:
            raise ValueError("Innings number cannot go backwards")
        for key in ("team_a_id", "team_b_id", "batting_team_id", "bowling_team_id"):
            if changes.get(key) is not None:
                self._require_team(changes[key])
        for key in ("current_batsman_id", "current_bowler_id"):
            if changes.get(key) is not None:
                self._require_player(changes[key])
        updated = replace(existing, **changes, updated_at=utc_now())
        self._db.put("matches", updated.to_dict())
        return updated

    def delete_match(self, match_id: str) -> None:
        self._require_match(match_id)
        if self._db.query_by("ball_events", "match_id", match_id):
            raise EntityInUseError(f"Match {match_id} has ball events and cannot be deleted")
        self._db.delete("matches", match_id)
        if self.session.current_match_id == match_id:
            self.session.clear()

    def update_match_status(self, match_id: str, status: MatchStatus) -> Match:
        match = self._require_match(match_id)
        changes: dict[str, Any] = {"status": status}
        if status == MatchStatus.IN_PROGRESS and match.start_time is None:
            changes["start_time"] = utc_now()
        if status in (MatchStatus.COMPLETED, MatchStatus.ABANDONED):
            changes["end_time"] = utc_now()
            if self.session.current_match_id == match_id:
                self.session.clear()
        logger.info("Match %s -> %s", match_id, status.value)
        return self.update_match(match_id, **changes)

    def start_match(self, match_id: str) -> Match:
        return self.update_match_status(match_id, MatchStatus.IN_PROGRESS)

    def finish_match(self, match_id: str) -> Match:
        return self.update_match_status(match_id, MatchStatus.COMPLETED)

    def abandon_match(self, match_id: str) -> Match:
        return self.update_match_status(match_id, MatchStatus.ABANDONED)

    def get_current_match(self) -> Optional[Match]:
        match_id = self.session.current_match_id
        return self.get_match(match_id) if match_id else None

    def get_all_matches(self) -> list[Match]:
        return [Match.from_dict(d) for d in self._db.all("matches")]

    def get_matches_by_status(self, status: MatchStatus) -> list[Match]:
        return [Match.from_dict(d) for d in self._db.query_by("matches", "status", status.value)]

    def get_team_matches(self, team_id: str) -> list[Match]:
        docs = (self._db.query_by("matches", "team_a_id", team_id)
                + self._db.query_by("matches", "team_b_id", team_id))
        matches = [Match.from_dict(d) for d in docs]
        return sorted(matches, key=lambda m: m.created_at, reverse=True)

    def switch_innings(self, match_id: str) -> Match:
        """Start the next innings: swap sides and reset the over/ball counters."""
        match = self._require_match(match_id)
        logger.info("Match %s: innings %d complete", match_id, match.current_innings)
        return self.update_match(
            match_id,
            current_innings=match.current_innings + 1,
            batting_team_id=match.bowling_team_id,
            bowling_team_id=match.batting_team_id,
            current_over=0,
            current_ball=0,
        )

    # ── Ball events ──────────────────────────────────────────────────

    def log_ball_event(self, request: LogBallEventRequest) -> BallEvent:
        """Record a delivery at the match's current position and update the score."""
        match = self._require_match(request.match_id)
        self._require_player(request.batsman_id)
        self._require_player(request.bowler_id)

        event = BallEvent(
            id=new_id(),
            match_id=match.id,
            innings=match.current_innings,
            over=match.current_over,
            ball=match.current_ball,
            batsman_id=request.batsman_id,
            bowler_id=request.bowler_id,
            runs=request.runs,
            extras=request.extras,
            outcome=request.outcome,
            is_wicket=request.is_wicket,
            wicket_type=request.wicket_type,
            dismissed_player_id=request.dismissed_player_id,
            fielder_ids=request.fielder_ids,
            source=request.source,
            metadata=request.metadata,
            batting_team_id=match.batting_team_id,
        )
        self._db.add("ball_events", event.to_dict())

        changes: dict[str, Any] = {
            "current_batsman_id": request.batsman_id,
            "current_bowler_id": request.bowler_id,
        }
        if match.batting_team_id == match.team_a_id:
            changes["team_a_score"] = match.team_a_score + event.total_runs
            if event.is_wicket:
                changes["team_a_wickets"] = match.team_a_wickets + 1
        else:
            changes["team_b_score"] = match.team_b_score + event.total_runs
            if event.is_wicket:
                changes["team_b_wickets"] = match.team_b_wickets + 1

        if event.is_legal_delivery:
            ball = match.current_ball + 1
            over = match.current_over
            if ball >= BALLS_PER_OVER:
                ball = 0
                over += 1
            changes["current_ball"] = ball
            changes["current_over"] = over

        self.update_match(match.id, **changes)
        logger.debug(
            "Logged %s %s: %d+%d%s",
            event.over_ball_str, event.outcome.value, event.runs, event.extras,
            " WICKET" if event.is_wicket else "",
        )
        return event

    def get_ball_event(self, event_id: str) -> Optional[BallEvent]:
        doc = self._db.get("ball_events", event_id)
        return BallEvent.from_dict(doc) if doc else None

    def update_ball_event(self, event_id: str, **changes: Any) -> BallEvent:
        """Manual correction. Match totals are NOT recomputed: the match is
        flagged stale until recompute_match_score() is called."""
        existing = self.get_ball_event(event_id)
        if existing is None:
            raise EntityNotFoundError("ball_events", event_id)
        changes.pop("id", None)
        changes.pop("timestamp", None)
        if "match_id" in changes:
            self._require_match(changes["match_id"])
        for key in ("batsman_id", "bowler_id"):
            if key in changes:
                self._require_player(changes[key])
        if changes.get("dismissed_player_id") is not None:
            self._require_player(changes["dismissed_player_id"])
        updated = replace(existing, **changes)
        self._db.put("ball_events", updated.to_dict())

        if {"runs", "extras", "is_wicket", "match_id", "batting_team_id"} & changes.keys():
            self._mark_stale(existing.match_id, f"ball event {event_id} edited")
            if updated.match_id != existing.match_id:
                self._mark_stale(updated.match_id, f"ball event {event_id} moved in")
        return updated

    def delete_ball_event(self, event_id: str) -> None:
        existing = self.get_ball_event(event_id)
        if existing is None:
            raise EntityNotFoundError("ball_events", event_id)
        self._db.delete("ball_events", event_id)
        self._mark_stale(existing.match_id, f"ball event {event_id} deleted")

    def _mark_stale(self, match_id: str, reason: str) -> None:
        logger.warning(
            "Match %s score may be stale (%s); call recompute_match_score()",
            match_id, reason,
        )
        if self.get_match(match_id) is not None:
            self.update_match(match_id, score_stale=True)

    def recompute_match_score(self, match_id: str) -> Match:
        """Rebuild both teams' runs and wickets from the logged events."""
        match = self._require_match(match_id)
        totals = {match.team_a_id: [0, 0], match.team_b_id: [0, 0]}
        for event in self.get_match_events(match_id):
            team_total = totals.setdefault(event.batting_team_id, [0, 0])
            team_total[0] += event.total_runs
            if event.is_wicket:
                team_total[1] += 1
        return self.update_match(
            match_id,
            team_a_score=totals[match.team_a_id][0],
            team_a_wickets=totals[match.team_a_id][1],
            team_b_score=totals[match.team_b_id][0],
            team_b_wickets=totals[match.team_b_id][1],
            score_stale=False,
        )

    def _events(self, index: str, value: str) -> list[BallEvent]:
        events = [BallEvent.from_dict(d) for d in self._db.query_by("ball_events", index, value)]
        # query_by returns insertion order; a stable sort keeps it for equal timestamps
        return sorted(events, key=lambda e: e.timestamp)

    def get_match_events(self, match_id: str) -> list[BallEvent]:
        return self._events("match_id", match_id)

    def get_batsman_events(self, player_id: str) -> list[BallEvent]:
        return self._events("batsman_id", player_id)

    def get_bowler_events(self, player_id: str) -> list[BallEvent]:
        return self._events("bowler_id", player_id)

    def get_events_by_source(self, match_id: str, source: EventSource) -> list[BallEvent]:
        return [e for e in self.get_match_events(match_id) if e.source == source]

    def get_wicket_events(self, match_id: str) -> list[BallEvent]:
        return [e for e in self.get_match_events(match_id) if e.is_wicket]

    def get_boundary_events(self, match_id: str) -> list[BallEvent]:
        return [e for e in self.get_match_events(match_id) if e.is_boundary]

    def get_over_events(self, match_id: str, over: int, innings: Optional[int] = None) -> list[BallEvent]:
        return [
            e for e in self.get_match_events(match_id)
            if e.over == over and (innings is None or e.innings == innings)
        ]

    # ── Statistics ───────────────────────────────────────────────────

    def calculate_batting_stats(self, player_id: str, match_id: Optional[str] = None) -> BattingStats:
        if match_id is not None:
            match_events = self.get_match_events(match_id)
            events = [e for e in match_events if e.batsman_id == player_id]
            wickets = [e for e in match_events if e.is_wicket]
        else:
            events = self.get_batsman_events(player_id)
            wickets = [
                e
                for mid in {e.match_id for e in events}
                for e in self.get_match_events(mid)
                if e.is_wicket
            ]
        return stats_calc.batting_stats(player_id, events, wickets)

    def calculate_bowling_stats(self, player_id: str, match_id: Optional[str] = None) -> BowlingStats:
        if match_id is not None:
            events = [e for e in self.get_match_events(match_id) if e.bowler_id == player_id]
        else:
            events = self.get_bowler_events(player_id)
        return stats_calc.bowling_stats(events)

    def update_player_stats(self, player_id: str) -> Player:
        """Recompute both stat blocks from the player's full history and persist."""
        return self.update_player(
            player_id,
            batting_stats=self.calculate_batting_stats(player_id),
            bowling_stats=self.calculate_bowling_stats(player_id),
        )

    def get_innings_scores(self, player_id: str) -> list[int]:
        """Runs scored per match, in order of first appearance."""
        groups = stats_calc.group_by_match(self.get_batsman_events(player_id))
        return [sum(e.runs for e in events) for events in groups.values()]

    def get_match_stats(self, match_id: str, player_id: str) -> MatchStats:
        events = self.get_match_events(match_id)
        faced = [e for e in events if e.batsman_id == player_id]
        bowled = [e for e in events if e.bowler_id == player_id]

        result = MatchStats(match_id=match_id, player_id=player_id)
        if faced:
            batting = self.calculate_batting_stats(player_id, match_id)
            dismissal = next(
                (e for e in events if e.is_wicket and e.dismissed_player_id == player_id),
                None,
            )
            result.batting = MatchBatting(
                runs=batting.runs,
                balls=batting.balls,
                fours=batting.fours,
                sixes=batting.sixes,
                strike_rate=batting.strike_rate,
                is_out=dismissal is not None,
                dismissal=dismissal.wicket_type if dismissal else None,
            )
        if bowled:
            bowling = stats_calc.bowling_stats(bowled)
            result.bowling = MatchBowling(
                overs=bowling.overs,
                runs=bowling.runs,
                wickets=bowling.wickets,
                economy=bowling.economy,
            )
        return result

    def get_match_summary(self, match_id: str) -> MatchSummary:
        match = self._require_match(match_id)
        events = self.get_match_events(match_id)

        winner: Optional[str] = None
        win_margin: Optional[str] = None
        if match.status == MatchStatus.COMPLETED:
            if match.team_a_score > match.team_b_score:
                winner = "TEAM_A"
                win_margin = f"by {match.team_a_score - match.team_b_score} runs"
            elif match.team_b_score > match.team_a_score:
                winner = "TEAM_B"  # Team B chases
                win_margin = f"by {MAX_WICKETS - match.team_b_wickets} wickets"
            else:
                winner = "DRAW"

        return MatchSummary(
            match=match,
            team_a_players=self.get_team_players(match.team_a_id),
            team_b_players=self.get_team_players(match.team_b_id),
            total_balls=len(events),
            total_runs=sum(e.total_runs for e in events),
            total_wickets=sum(1 for e in events if e.is_wicket),
            winner=winner,
            win_margin=win_margin,
        )

    # ── Utilities ────────────────────────────────────────────────────

    def export_data(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "players": self._db.all("players"),
            "teams": self._db.all("teams"),
            "matches": self._db.all("matches"),
            "ball_events": self._db.all("ball_events"),
        }

    def get_db_stats(self) -> dict[str, int]:
        return {
            "player_count": self._db.count("players"),
            "team_count": self._db.count("teams"),
            "match_count": self._db.count("matches"),
            "event_count": self._db.count("ball_events"),
        }

    def clear_all_data(self) -> None:
        for collection in ("players", "teams", "matches", "ball_events"):
            self._db.clear(collection)
        self.session.clear()
        logger.warning("All cricket data cleared")

    def _require_player(self, player_id: str) -> Player:
        player = self.get_player(player_id)
        if player is None:
            raise EntityNotFoundError("players", player_id)
        return player

    def _require_team(self, team_id: str) -> Team:
        team = self.get_team(team_id)
        if team is None:
            raise EntityNotFoundError("teams", team_id)
        return team

    def _require_match(self, match_id: str) -> Match:
        match = self.get_match(match_id)
        if match is None:
            raise EntityNotFoundError("matches", match_id)
        return match
