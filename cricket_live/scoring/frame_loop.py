"""
Frame processing loop.

A cancellable periodic task: fetch frame -> detect -> apply rules ->
score. Iterations never overlap; if one overruns the frame interval the
missed ticks are skipped rather than queued.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from cricket_live.camera.frame_source import CameraError, FrameSource
from cricket_live.detection.engine import DetectionEngine, DetectionError
from cricket_live.rules.engine import CricketEvent, RuleEngine
from cricket_live.scoring.live_scoring import LiveScoringEngine

logger = logging.getLogger(__name__)


@dataclass
class Lineup:
    """Who is on strike and who is bowling right now."""
    striker_id: Optional[str] = None
    bowler_id: Optional[str] = None

    def is_complete(self) -> bool:
        return self.striker_id is not None and self.bowler_id is not None


@dataclass
class FrameLoopStats:
    iterations: int = 0
    frames_processed: int = 0
    events_emitted: int = 0
    events_scored: int = 0
    errors: int = 0
    skipped_ticks: int = 0
    discarded_results: int = 0


class FrameLoop:
    def __init__(
        self,
        frame_source: FrameSource,
        detection: DetectionEngine,
        rules: RuleEngine,
        scoring: LiveScoringEngine,
        lineup: Optional[Lineup] = None,
    ):
        self.frame_source = frame_source
        self.detection = detection
        self.rules = rules
        self.scoring = scoring
        self.lineup = lineup or Lineup()
        self.stats = FrameLoopStats()
        self._task: Optional[asyncio.Task] = None
        # Bumped on stop/pause; in-flight iterations from an older
        # generation drop their results.
        self._generation = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Optional[CricketEvent]:
        """One iteration. Returns the emitted event, if any."""
        generation = self._generation
        self.stats.iterations += 1

        # Device reads block, keep them off the event loop
        frame = await asyncio.to_thread(self.frame_source.get_frame)
        if frame is None:
            return None

        detections = await self.detection.detect_all(frame)
        if generation != self._generation:
            self.stats.discarded_results += 1
            logger.debug("Discarding detections from a cancelled iteration")
            return None
        self.stats.frames_processed += 1

        event = self.rules.process_detections(detections)
        if event is None:
            return None
        self.stats.events_emitted += 1

        if not self.scoring.is_live:
            logger.debug("Event %s ignored: no live match", event)
        elif not self.lineup.is_complete():
            logger.warning("Event %s ignored: striker/bowler not set", event)
        else:
            self.scoring.process_event(event, self.lineup.striker_id, self.lineup.bowler_id)
            self.stats.events_scored += 1
        return event

    async def _run(self) -> None:
        pacer = self.frame_source.pacer
        pacer.reset()
        while True:
            wait, missed = pacer.next_tick()
            if missed:
                self.stats.skipped_ticks += missed
            await asyncio.sleep(wait)
            try:
                await self.run_once()
            except (CameraError, DetectionError) as e:
                self.stats.errors += 1
                logger.warning("Frame loop iteration failed, retrying next frame: %s", e)

    def start(self) -> None:
        """Schedule the loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Frame loop started")

    async def _cancel(self) -> None:
        self._generation += 1
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def pause(self) -> None:
        await self._cancel()
        logger.info("Frame loop paused")

    async def resume(self) -> None:
        self.start()

    async def stop(self) -> None:
        """Cancel the loop and release the camera.

        Re-raises whatever error terminated the loop, if one did.
        """
        try:
            await self._cancel()
        finally:
            self.frame_source.stop()
            logger.info("Frame loop stopped")
