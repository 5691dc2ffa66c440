"""
Live Cricket Pipeline Orchestrator.

Composition root that wires the full chain:
Frame Source → Detection Engine → Rule Engine → Live Scoring → Match Data Store
with the prediction and career engines reading back from the store.

Usage:
    python -m cricket_live.orchestrator --demo
    python -m cricket_live.orchestrator --summary MATCH_ID
    python -m cricket_live.orchestrator --leaderboard RUNS
    python -m cricket_live.orchestrator --export backup.json
    python -m cricket_live.orchestrator --stats
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import math
from dataclasses import replace
from pathlib import Path
from typing import Optional

from cricket_live.camera.frame_source import FrameSource, OpenCVFrameSource, SimulatedFrameSource
from cricket_live.career.engine import CareerEngine, LeaderboardCategory
from cricket_live.config import CameraConfig, EngineConfig
from cricket_live.data.models import CreatePlayerRequest, CreateTeamRequest, PlayerRole
from cricket_live.data.storage import EntityStore, KeyValueStore
from cricket_live.data.store import MatchDataStore, MatchSession
from cricket_live.detection.engine import (
    DetectionEngine,
    ObjectDetector,
    ScriptedObjectDetector,
    YoloObjectDetector,
)
from cricket_live.detection.types import RawPrediction
from cricket_live.predictions.engine import PredictionEngine
from cricket_live.rules.engine import RuleEngine
from cricket_live.scoring.frame_loop import FrameLoop, Lineup
from cricket_live.scoring.live_scoring import LiveScore, LiveScoringEngine, ScoreUpdate, Side, UpdateType

logger = logging.getLogger("cricket_live.orchestrator")


class CricketPipeline:
    """Owns one instance of every component, wired together."""

    def __init__(
        self,
        config: EngineConfig,
        frame_source: Optional[FrameSource] = None,
        detector: Optional[ObjectDetector] = None,
        entities: Optional[EntityStore] = None,
        kv: Optional[KeyValueStore] = None,
    ):
        self.config = config
        self.entities = entities or EntityStore(config.storage.database_path)
        self.kv = kv or KeyValueStore(config.storage.kv_path)
        self.session = MatchSession(self.kv)
        self.store = MatchDataStore(self.entities, self.session)

        self.frame_source = frame_source or OpenCVFrameSource()
        self.detection = DetectionEngine(
            detector or YoloObjectDetector(config.detection.model_path),
            config.detection,
        )
        self.rules = RuleEngine(config.rules)
        self.scoring = LiveScoringEngine(self.store, self.kv, config.scoring)
        self.predictions = PredictionEngine(self.store)
        self.career = CareerEngine(self.store, self.kv)

        self.lineup = Lineup()
        self.frame_loop = FrameLoop(
            self.frame_source, self.detection, self.rules, self.scoring, self.lineup,
        )

    def close(self) -> None:
        self.frame_source.stop()
        self.entities.close()


# ── Demo ─────────────────────────────────────────────────────────────

# Runs per delivery in the scripted demo; "W" = bowled
DEMO_INNINGS = (
    [6, 4, "W", 6, 4, 4],
    [4, 4, 6, "W", 4, 4],
)


def _ball(x: float, y: float) -> RawPrediction:
    return RawPrediction(label="sports ball", score=0.9, bbox=(x - 5, y - 5, 10, 10))


def _delivery_frames(outcome, gap_frames: int) -> list[list[RawPrediction]]:
    """Ball detections for one delivery followed by empty frames."""
    if outcome == 6:
        # Straight up over the rope without touching the ground
        frames = [[_ball(640, y)] for y in (400, 330, 260, 190, 120)]
    elif outcome == 4:
        # Along the ground to the side boundary
        frames = [[_ball(x, 560)] for x in (700, 850, 1000, 1100, 1200)]
    else:
        stumps = RawPrediction(label="stumps", score=0.8, bbox=(620, 450, 40, 120))
        frames = [[_ball(640, 480), stumps]]
    return frames + [[] for _ in range(gap_frames)]


def build_demo_script(config: EngineConfig) -> list[list[RawPrediction]]:
    # Enough empty frames to clear the rule engine cooldown between deliveries
    gap = math.ceil(config.rules.cooldown_ms / 1000 * config.camera.frame_rate) + 5
    script: list[list[RawPrediction]] = []
    for innings in DEMO_INNINGS:
        for outcome in innings:
            script.extend(_delivery_frames(outcome, gap))
    return script


async def _play_demo_match(pipeline: CricketPipeline, teams: dict[Side, tuple[str, str, str]]) -> None:
    """teams: side -> (team_id, batsman_id, bowler_id)."""
    finished = asyncio.Event()

    def on_update(update: ScoreUpdate) -> None:
        if update.type == UpdateType.MATCH_END:
            finished.set()
        elif update.type == UpdateType.WICKET:
            logger.info("  WICKET (%s)", update.dismissal_type)

    def on_score(score: LiveScore) -> None:
        batting = teams[score.batting_team]
        bowling = teams[Side.TEAM_B if score.batting_team == Side.TEAM_A else Side.TEAM_A]
        pipeline.lineup.striker_id = batting[1]
        pipeline.lineup.bowler_id = bowling[2]
        logger.info(
            "  %s %d/%d vs %d/%d (%d.%d) %s",
            score.batting_team.value,
            score.team_a_score, score.team_a_wickets,
            score.team_b_score, score.team_b_wickets,
            score.current_over, score.current_ball,
            score.last_event or "",
        )

    pipeline.scoring.on_event_update(on_update)
    pipeline.scoring.on_score_update(on_score)

    pipeline.frame_source.start(pipeline.config.camera)
    await pipeline.detection.initialize()
    pipeline.scoring.start_match(
        teams[Side.TEAM_A][0], teams[Side.TEAM_B][0], total_overs=len(DEMO_INNINGS[0]) // 6,
    )

    pipeline.frame_loop.start()
    try:
        await asyncio.wait_for(finished.wait(), timeout=120)
    finally:
        await pipeline.frame_loop.stop()
    logger.info("Frame loop: %s", pipeline.frame_loop.stats)


def run_demo(config: EngineConfig) -> None:
    """Drive a scripted one-over-a-side match through the whole pipeline."""
    config = replace(config, camera=CameraConfig(frame_rate=60))
    pipeline = CricketPipeline(
        config,
        frame_source=SimulatedFrameSource(),
        detector=ScriptedObjectDetector(build_demo_script(config)),
    )

    logger.info("=" * 60)
    logger.info("LIVE CRICKET PIPELINE - DEMO MODE")
    logger.info("=" * 60)

    store = pipeline.store
    store.clear_all_data()
    pipeline.career.clear_all_data()
    pipeline.scoring.clear_saved()

    teams: dict[Side, tuple[str, str, str]] = {}
    for side, name in ((Side.TEAM_A, "Thunder"), (Side.TEAM_B, "Strikers")):
        batsman = store.create_player(CreatePlayerRequest(f"{name} Opener", PlayerRole.BATSMAN))
        bowler = store.create_player(CreatePlayerRequest(f"{name} Quick", PlayerRole.BOWLER))
        team = store.create_team(CreateTeamRequest(name, [batsman.id, bowler.id]))
        teams[side] = (team.id, batsman.id, bowler.id)

    try:
        asyncio.run(_play_demo_match(pipeline, teams))

        match = store.get_all_matches()[-1]
        summary = store.get_match_summary(match.id)
        logger.info("")
        logger.info("Match %s: %s %s", match.id, summary.winner, summary.win_margin or "")
        logger.info(
            "Balls: %d | Runs: %d | Wickets: %d",
            summary.total_balls, summary.total_runs, summary.total_wickets,
        )

        win = pipeline.predictions.predict_winner(match.id)
        logger.info("Win probability A/B: %.0f%% / %.0f%%", win.team_a_win_probability, win.team_b_win_probability)
        _, batsman_id, _ = teams[Side.TEAM_A]
        _, _, bowler_id = teams[Side.TEAM_B]
        next_ball = pipeline.predictions.predict_next_ball(match.id, batsman_id, bowler_id)
        logger.info(
            "Next ball: %s (%.0f%%, confidence %.2f) - %s",
            next_ball.outcome.value, next_ball.probability, next_ball.confidence, next_ball.reasoning,
        )

        for player in store.get_all_players():
            pipeline.career.update_player_career(player.id)
        board = pipeline.career.get_leaderboard(LeaderboardCategory.AI_RATING)
        logger.info("")
        logger.info("AI rating leaderboard:")
        for entry in board.entries:
            logger.info("  %d. %-18s %s", entry.rank, entry.player_name, entry.value)
    finally:
        pipeline.close()


# ── Store queries ────────────────────────────────────────────────────


def show_summary(pipeline: CricketPipeline, match_id: str) -> None:
    summary = pipeline.store.get_match_summary(match_id)
    match = summary.match
    logger.info("Match %s [%s] at %s", match.id, match.status.value, match.venue.name)
    logger.info("Team A: %d/%d", match.team_a_score, match.team_a_wickets)
    logger.info("Team B: %d/%d", match.team_b_score, match.team_b_wickets)
    logger.info("Balls: %d | Runs: %d | Wickets: %d", summary.total_balls, summary.total_runs, summary.total_wickets)
    if summary.winner:
        logger.info("Result: %s %s", summary.winner, summary.win_margin or "")
    if match.score_stale:
        logger.warning("Score is stale after manual edits; recompute before trusting it")


def show_leaderboard(pipeline: CricketPipeline, category: str) -> None:
    board = pipeline.career.get_leaderboard(LeaderboardCategory(category.upper()))
    logger.info("%s leaderboard (%d players)", board.category.value, len(board.entries))
    for entry in board.entries:
        logger.info("  %2d. %-20s %10.2f  (%+d)", entry.rank, entry.player_name, entry.value, entry.change)


def export_data(pipeline: CricketPipeline, path: str) -> None:
    data = pipeline.store.export_data()
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    logger.info("Exported %s to %s", pipeline.store.get_db_stats(), path)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Live cricket scoring pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m cricket_live.orchestrator --demo
  python -m cricket_live.orchestrator --leaderboard ai_rating
  python -m cricket_live.orchestrator --export backup.json
        """,
    )

    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--demo", action="store_true", help="Run a scripted match through the full pipeline")
    mode.add_argument("--summary", metavar="MATCH_ID", help="Show a stored match summary")
    mode.add_argument(
        "--leaderboard", metavar="CATEGORY",
        choices=[c.value for c in LeaderboardCategory] + [c.value.lower() for c in LeaderboardCategory],
        help="Show a career leaderboard",
    )
    mode.add_argument("--export", metavar="PATH", help="Export all match data as JSON")
    mode.add_argument("--stats", action="store_true", help="Show database record counts")

    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    config = EngineConfig.from_env()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.demo:
        # Keep demo data out of the real database
        demo_dir = Path(config.storage.data_dir) / "demo"
        run_demo(replace(config, storage=replace(config.storage, data_dir=demo_dir)))
        return

    pipeline = CricketPipeline(config)
    try:
        if args.summary:
            show_summary(pipeline, args.summary)
        elif args.leaderboard:
            show_leaderboard(pipeline, args.leaderboard)
        elif args.export:
            export_data(pipeline, args.export)
        elif args.stats:
            logger.info("Database: %s", pipeline.store.get_db_stats())
    finally:
        pipeline.close()


if __name__ == "__main__":
    main()
