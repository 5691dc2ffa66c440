"""
Field zones and trajectory geometry for the rule engine.

All zones are derived from frame dimensions, so the same rules work for
any camera resolution.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from cricket_live.config import RuleConfig
from cricket_live.detection.types import BBox, Point


@dataclass(frozen=True)
class Zones:
    frame_width: float
    frame_height: float
    boundary_top: float  # y above this is over the rope
    ground_line: float  # y below this is on the ground
    boundary_left: float
    boundary_right: float

    @classmethod
    def from_config(cls, config: RuleConfig) -> "Zones":
        return cls.for_frame(config, config.frame_width, config.frame_height)

    @classmethod
    def for_frame(cls, config: RuleConfig, width: float, height: float) -> "Zones":
        return cls(
            frame_width=width,
            frame_height=height,
            boundary_top=height * config.boundary_top_percent,
            ground_line=height * config.ground_line_percent,
            boundary_left=width * config.boundary_side_percent,
            boundary_right=width * (1 - config.boundary_side_percent),
        )

    def is_boundary(self, position: Point) -> bool:
        return (
            position.y < self.boundary_top
            or position.x < self.boundary_left
            or position.x > self.boundary_right
        )

    def is_on_ground(self, position: Point) -> bool:
        return position.y > self.ground_line


def distance(p1: Point, p2: Point) -> float:
    return math.hypot(p1.x - p2.x, p1.y - p2.y)


def bbox_intersect(bbox1: BBox, bbox2: BBox) -> bool:
    """Touching edges count as an intersection."""
    x1, y1, w1, h1 = bbox1
    x2, y2, w2, h2 = bbox2
    return not (
        x1 + w1 < x2
        or x2 + w2 < x1
        or y1 + h1 < y2
        or y2 + h2 < y1
    )


def project_trajectory(trajectory: Sequence[Point], steps: int = 10) -> list[Point]:
    """Linear extrapolation from the velocity between the last two points."""
    if len(trajectory) < 2:
        return []
    last, second_last = trajectory[-1], trajectory[-2]
    vx = last.x - second_last.x
    vy = last.y - second_last.y
    return [Point(last.x + vx * i, last.y + vy * i) for i in range(1, steps + 1)]


def trajectory_intersects(trajectory: Sequence[Point], bbox: BBox) -> bool:
    x, y, w, h = bbox
    return any(x <= p.x <= x + w and y <= p.y <= y + h for p in trajectory)
