"""
Batting and bowling aggregation over ball events.

Pure functions: the match store fetches the events and these compute
the stat blocks. Kept separate so the formulas can be tested without a
database.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Iterable, Optional

from cricket_live.config import BALLS_PER_OVER
from cricket_live.data.models import BallEvent, BattingStats, BowlingStats, BallOutcome


def group_by_match(events: Iterable[BallEvent]) -> "OrderedDict[str, list[BallEvent]]":
    groups: OrderedDict[str, list[BallEvent]] = OrderedDict()
    for event in events:
        groups.setdefault(event.match_id, []).append(event)
    return groups


def overs_notation(balls: int) -> float:
    """Cricket over notation: 20 balls -> 3.2 (3 overs, 2 balls).

    Not a true fraction of an over; the ball remainder is stored as tenths.
    """
    return balls // BALLS_PER_OVER + (balls % BALLS_PER_OVER) / 10


def strike_rate(runs: int, balls: int) -> float:
    return (runs / balls) * 100 if balls > 0 else 0.0


def batting_stats(
    player_id: str,
    events: list[BallEvent],
    dismissal_events: Optional[list[BallEvent]] = None,
) -> BattingStats:
    """Aggregate the deliveries a player faced.

    Args:
        player_id: The batsman
        events: Events where player_id is the batsman
        dismissal_events: Wicket events from the same matches; a wicket
            naming the player as dismissed marks that innings out even
            when the player was not on strike. Defaults to events.
    """
    stats = BattingStats()
    if not events:
        return stats

    matches = group_by_match(events)
    stats.matches_played = len(matches)
    stats.innings = len(matches)  # one innings per match

    for event in events:
        stats.runs += event.runs
        if event.outcome != BallOutcome.WIDE:
            stats.balls += 1
        if event.runs == 4:
            stats.fours += 1
        if event.runs == 6:
            stats.sixes += 1

    dismissed_in = {
        e.match_id
        for e in (dismissal_events if dismissal_events is not None else events)
        if e.is_wicket and e.dismissed_player_id == player_id
    }
    for match_id, match_events in matches.items():
        innings_runs = sum(e.runs for e in match_events)
        stats.highest_score = max(stats.highest_score, innings_runs)
        if match_id not in dismissed_in:
            stats.not_outs += 1

    stats.strike_rate = strike_rate(stats.runs, stats.balls)
    dismissals = stats.innings - stats.not_outs
    stats.average = stats.runs / dismissals if dismissals > 0 else float(stats.runs)
    return stats


def bowling_stats(events: list[BallEvent]) -> BowlingStats:
    """Aggregate the deliveries a player bowled (events where they are bowler)."""
    stats = BowlingStats()
    if not events:
        return stats

    matches = group_by_match(events)
    stats.matches_played = len(matches)
    stats.innings = len(matches)

    for event in events:
        if event.is_legal_delivery:
            stats.balls += 1
        stats.runs += event.total_runs
        if event.is_wicket:
            stats.wickets += 1

    stats.overs = overs_notation(stats.balls)

    # Maidens: a complete over (six legal balls) conceding nothing
    for match_events in matches.values():
        overs: dict[tuple[int, int], list[BallEvent]] = {}
        for event in match_events:
            overs.setdefault((event.innings, event.over), []).append(event)
        for over_events in overs.values():
            legal = sum(1 for e in over_events if e.is_legal_delivery)
            if legal == BALLS_PER_OVER and sum(e.total_runs for e in over_events) == 0:
                stats.maidens += 1

    stats.economy = stats.runs / stats.overs if stats.overs > 0 else 0.0
    stats.average = stats.runs / stats.wickets if stats.wickets > 0 else 0.0

    best_wickets, best_runs = 0, 999
    for match_events in matches.values():
        wickets = sum(1 for e in match_events if e.is_wicket)
        runs = sum(e.total_runs for e in match_events)
        if wickets > best_wickets or (wickets == best_wickets and runs < best_runs):
            best_wickets, best_runs = wickets, runs
    stats.best_figures = f"{best_wickets}/{best_runs}"
    return stats
