"""
Detection engine.

Turns one camera frame into typed cricket detections. The object model
itself is a pluggable black box (ObjectDetector); this module applies the
cricket-specific filtering on top: label aliases, per-class confidence
thresholds, the bat aspect-ratio check and batsman classification.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

import numpy as np

from cricket_live.config import DetectionConfig
from cricket_live.detection.boundary import detect_boundary
from cricket_live.detection.types import (
    AllDetections,
    BoundaryDetection,
    ClassStats,
    Detection,
    DetectionStats,
    ModelInfo,
    PlayerDetection,
    RawPrediction,
)

logger = logging.getLogger(__name__)


class DetectionError(Exception):
    """Base class for detection failures."""


class DetectionNotInitializedError(DetectionError):
    def __init__(self) -> None:
        super().__init__("Detection engine not initialized")


class ModelLoadError(DetectionError):
    """The object detection model could not be loaded."""


# ── Model backends ───────────────────────────────────────────────────


class ObjectDetector(ABC):
    """Black-box frame -> labelled bounding boxes oracle."""

    name = "detector"
    version = ""

    @abstractmethod
    def load(self) -> None:
        """Load model weights. Raises ModelLoadError on failure."""

    @abstractmethod
    def predict(self, frame: np.ndarray) -> list[RawPrediction]:
        """Run inference on a single frame."""

    @property
    @abstractmethod
    def is_loaded(self) -> bool:
        ...


class YoloObjectDetector(ObjectDetector):
    """Ultralytics YOLO backend (COCO classes, or a custom cricket model)."""

    name = "YOLO"

    def __init__(self, model_path: str = "yolov8n.pt"):
        self.model_path = model_path
        self._model = None

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def load(self) -> None:
        try:
            from ultralytics import YOLO
        except ImportError as e:
            raise ModelLoadError(
                "ultralytics required for the YOLO backend. "
                "Install with: pip install cricket-live[yolo]"
            ) from e
        try:
            self._model = YOLO(self.model_path)
        except Exception as e:
            raise ModelLoadError(f"Failed to load model from {self.model_path}: {e}") from e
        logger.info("Loaded YOLO model from %s", self.model_path)

    def predict(self, frame: np.ndarray) -> list[RawPrediction]:
        if self._model is None:
            raise DetectionNotInitializedError()
        results = self._model.predict(frame, verbose=False)
        predictions = []
        for res in results:
            if res.boxes is None or len(res.boxes) == 0:
                continue
            boxes_xywh = res.boxes.xywh.cpu().numpy()
            boxes_conf = res.boxes.conf.cpu().numpy()
            boxes_cls = res.boxes.cls.cpu().numpy().astype(int)
            for i in range(len(res.boxes)):
                cx, cy, w, h = (float(v) for v in boxes_xywh[i])
                predictions.append(RawPrediction(
                    label=res.names[int(boxes_cls[i])],
                    score=float(boxes_conf[i]),
                    bbox=(cx - w / 2, cy - h / 2, w, h),
                ))
        return predictions


class ScriptedObjectDetector(ObjectDetector):
    """Replays prepared predictions, one list per frame.

    Once the script runs out every further frame has no predictions.
    """

    name = "scripted"

    def __init__(self, script: Optional[list[list[RawPrediction]]] = None, fail_load: bool = False):
        self._script = list(script or [])
        self._fail_load = fail_load
        self._loaded = False
        self.calls = 0

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def load(self) -> None:
        if self._fail_load:
            raise ModelLoadError("Scripted model configured to fail")
        self._loaded = True

    def predict(self, frame: np.ndarray) -> list[RawPrediction]:
        index = self.calls
        self.calls += 1
        return list(self._script[index]) if index < len(self._script) else []


# ── Batsman classification ───────────────────────────────────────────


class PositionClassifier(ABC):
    """Decides whether a detected player is the batsman."""

    @abstractmethod
    def is_batsman(self, detection: Detection, frame_width: int, frame_height: int) -> bool:
        ...


class CreaseZoneClassifier(PositionClassifier):
    """Batsman stands in the horizontal centre band, lower half of the frame.

    A camera-angle heuristic, not ground truth.
    """

    def __init__(self, x_min: float = 0.3, x_max: float = 0.7, y_min: float = 0.5):
        self.x_min = x_min
        self.x_max = x_max
        self.y_min = y_min

    def is_batsman(self, detection: Detection, frame_width: int, frame_height: int) -> bool:
        center = detection.center
        in_center_x = frame_width * self.x_min < center.x < frame_width * self.x_max
        in_bottom = center.y > frame_height * self.y_min
        return in_center_x and in_bottom


# ── Engine ───────────────────────────────────────────────────────────


class DetectionEngine:
    """Per-class cricket object detection over a pluggable model."""

    def __init__(
        self,
        detector: ObjectDetector,
        config: Optional[DetectionConfig] = None,
        classifier: Optional[PositionClassifier] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.detector = detector
        self.config = config or DetectionConfig()
        self.classifier = classifier or CreaseZoneClassifier()
        self._clock = clock

        self._total_inferences = 0
        self._total_inference_ms = 0.0
        self._last_inference_ms = 0.0
        self._per_class: dict[str, ClassStats] = {}

    async def initialize(self) -> None:
        logger.info("Initializing detection engine (%s)", self.detector.name)
        await asyncio.to_thread(self.detector.load)
        logger.info("Detection engine ready")

    def is_ready(self) -> bool:
        return self.detector.is_loaded

    def _require_ready(self) -> None:
        if not self.is_ready():
            raise DetectionNotInitializedError()

    async def _infer(self, frame: np.ndarray) -> list[RawPrediction]:
        self._require_ready()
        start = self._clock()
        try:
            predictions = await asyncio.to_thread(self.detector.predict, frame)
        except DetectionError:
            raise
        except Exception as e:
            raise DetectionError(f"Inference failed: {e}") from e
        elapsed_ms = (self._clock() - start) * 1000
        self._total_inferences += 1
        self._total_inference_ms += elapsed_ms
        self._last_inference_ms = elapsed_ms
        logger.debug("Inference: %d predictions in %.1f ms", len(predictions), elapsed_ms)
        return predictions

    # ── Filters (pure, over one frame's predictions) ─────────────────

    def _select(
        self, predictions: list[RawPrediction], labels: tuple[str, ...], threshold: float, cls: str,
    ) -> list[Detection]:
        detections = [
            Detection(cls=cls, confidence=p.score, bbox=p.bbox)
            for p in predictions
            if p.label in labels and p.score >= threshold
        ]
        return sorted(detections, key=lambda d: d.confidence, reverse=True)

    def _record(self, detections: list[Detection]) -> None:
        for d in detections:
            stats = self._per_class.setdefault(d.cls, ClassStats())
            stats.count += 1
            stats.total_confidence += d.confidence

    def _filter_balls(self, predictions: list[RawPrediction]) -> list[Detection]:
        balls = self._select(predictions, self.config.ball_labels, self.config.ball_confidence, "ball")
        self._record(balls)
        return balls

    def _filter_bats(self, predictions: list[RawPrediction]) -> list[Detection]:
        candidates = self._select(predictions, self.config.bat_labels, self.config.bat_confidence, "bat")
        # Bats are long and thin, held roughly upright
        bats = [
            d for d in candidates
            if d.bbox[2] > 0 and d.bbox[3] / d.bbox[2] > self.config.bat_min_aspect_ratio
        ]
        self._record(bats)
        return bats

    def _filter_players(self, predictions: list[RawPrediction], frame: np.ndarray) -> list[PlayerDetection]:
        height, width = frame.shape[:2]
        players = []
        for d in self._select(predictions, self.config.player_labels, self.config.player_confidence, "player"):
            player = PlayerDetection(cls=d.cls, confidence=d.confidence, bbox=d.bbox)
            player.is_batsman = self.classifier.is_batsman(player, width, height)
            players.append(player)
        self._record(players)
        return players

    def _filter_stumps(self, predictions: list[RawPrediction]) -> list[Detection]:
        stumps = self._select(predictions, self.config.stumps_labels, self.config.stumps_confidence, "stumps")
        self._record(stumps)
        return stumps

    # ── Public detectors ─────────────────────────────────────────────

    async def detect_ball(self, frame: np.ndarray) -> list[Detection]:
        return self._filter_balls(await self._infer(frame))

    async def detect_bat(self, frame: np.ndarray) -> list[Detection]:
        return self._filter_bats(await self._infer(frame))

    async def detect_players(self, frame: np.ndarray) -> list[PlayerDetection]:
        return self._filter_players(await self._infer(frame), frame)

    async def detect_stumps(self, frame: np.ndarray) -> list[Detection]:
        return self._filter_stumps(await self._infer(frame))

    async def detect_boundary(self, frame: np.ndarray) -> BoundaryDetection:
        self._require_ready()
        try:
            return await asyncio.to_thread(detect_boundary, frame, self.config.boundary_confidence)
        except Exception as e:
            raise DetectionError(f"Boundary detection failed: {e}") from e

    async def detect_all(self, frame: np.ndarray) -> AllDetections:
        """Run all five detectors concurrently over a single model inference."""
        self._require_ready()
        inference = asyncio.ensure_future(self._infer(frame))

        async def over_inference(fn, *args):
            return fn(await inference, *args)

        balls, bats, players, stumps, boundary = await asyncio.gather(
            over_inference(self._filter_balls),
            over_inference(self._filter_bats),
            over_inference(self._filter_players, frame),
            over_inference(self._filter_stumps),
            self.detect_boundary(frame),
        )
        return AllDetections(
            ball=balls[0] if balls else None,
            bat=bats[0] if bats else None,
            players=players,
            stumps=stumps,
            boundary=boundary,
            frame_size=(frame.shape[1], frame.shape[0]),
        )

    def get_stats(self) -> DetectionStats:
        return DetectionStats(
            models_loaded=[ModelInfo(self.detector.name, self.detector.is_loaded, self.detector.version)],
            total_inferences=self._total_inferences,
            average_inference_ms=(
                self._total_inference_ms / self._total_inferences if self._total_inferences else 0.0
            ),
            last_inference_ms=self._last_inference_ms,
            per_class={k: ClassStats(v.count, v.total_confidence) for k, v in self._per_class.items()},
        )
