"""
Detection data types.

What the detection engine hands to the rule engine: confidence-scored,
positioned objects for one frame.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Point:
    x: float
    y: float


BBox = tuple[float, float, float, float]  # x, y, width, height (top-left origin)


@dataclass
class RawPrediction:
    """One labelled box straight from the model, before cricket filtering."""
    label: str
    score: float
    bbox: BBox


@dataclass
class Detection:
    cls: str  # ball / bat / player / stumps
    confidence: float
    bbox: BBox

    @property
    def center(self) -> Point:
        x, y, w, h = self.bbox
        return Point(x + w / 2, y + h / 2)


@dataclass
class PlayerDetection(Detection):
    is_batsman: bool = False


@dataclass(frozen=True)
class Line:
    start: Point
    end: Point
    angle: float  # degrees, 0 = horizontal


@dataclass
class BoundaryDetection:
    detected: bool = False
    lines: list[Line] = field(default_factory=list)
    confidence: float = 0.0


@dataclass
class AllDetections:
    """Everything detected in one frame."""
    ball: Optional[Detection] = None
    bat: Optional[Detection] = None
    players: list[PlayerDetection] = field(default_factory=list)
    stumps: list[Detection] = field(default_factory=list)
    boundary: BoundaryDetection = field(default_factory=BoundaryDetection)
    timestamp: float = field(default_factory=time.time)
    frame_size: Optional[tuple[int, int]] = None  # width, height


@dataclass
class ModelInfo:
    name: str
    loaded: bool
    version: str = ""


@dataclass
class ClassStats:
    count: int = 0
    total_confidence: float = 0.0

    @property
    def mean_confidence(self) -> float:
        return self.total_confidence / self.count if self.count else 0.0


@dataclass
class DetectionStats:
    models_loaded: list[ModelInfo]
    total_inferences: int
    average_inference_ms: float
    last_inference_ms: float
    per_class: dict[str, ClassStats]
