"""
Boundary rope detection.

The rope shows up as long, near-horizontal edges across the frame. We
run Canny + probabilistic Hough and keep the flat lines; confidence is
the share of the frame width they cover.
"""

from __future__ import annotations

import logging
import math

import cv2
import numpy as np

from cricket_live.detection.types import BoundaryDetection, Line, Point

logger = logging.getLogger(__name__)

MAX_ANGLE_DEG = 10.0


def find_horizontal_lines(
    frame: np.ndarray,
    canny_low: int = 50,
    canny_high: int = 150,
    hough_threshold: int = 100,
    min_line_length: int = 100,
    max_line_gap: int = 10,
) -> list[Line]:
    if frame.ndim == 3:
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    else:
        gray = frame
    edges = cv2.Canny(gray, canny_low, canny_high)
    raw = cv2.HoughLinesP(
        edges, 1, np.pi / 180,
        threshold=hough_threshold,
        minLineLength=min_line_length,
        maxLineGap=max_line_gap,
    )
    if raw is None:
        return []

    # Older OpenCV returns (N, 1, 4), newer (N, 4)
    lines = []
    for segment in np.asarray(raw).reshape(-1, 4):
        x1, y1, x2, y2 = (int(v) for v in segment)
        angle = math.degrees(math.atan2(y2 - y1, x2 - x1))
        if abs(angle) < MAX_ANGLE_DEG or abs(angle) > 180 - MAX_ANGLE_DEG:
            lines.append(Line(Point(x1, y1), Point(x2, y2), angle))
    return lines


def detect_boundary(frame: np.ndarray, min_confidence: float = 0.5) -> BoundaryDetection:
    lines = find_horizontal_lines(frame)
    if not lines:
        return BoundaryDetection()

    width = frame.shape[1]
    covered = sum(abs(line.end.x - line.start.x) for line in lines)
    confidence = min(1.0, covered / width) if width else 0.0
    logger.debug("Boundary: %d lines, confidence %.2f", len(lines), confidence)
    return BoundaryDetection(
        detected=confidence >= min_confidence,
        lines=lines,
        confidence=confidence,
    )
