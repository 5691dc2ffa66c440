"""
Configuration management for the live cricket pipeline.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class CameraConfig:
    """Frame source configuration."""
    device_id: Optional[str] = None  # None = prefer rear/environment camera
    width: int = 1280
    height: int = 720
    frame_rate: int = 30


@dataclass(frozen=True)
class DetectionConfig:
    """Per-class confidence thresholds and model settings."""
    ball_confidence: float = 0.6
    bat_confidence: float = 0.5
    player_confidence: float = 0.6
    stumps_confidence: float = 0.4
    boundary_confidence: float = 0.5
    bat_min_aspect_ratio: float = 1.5  # height / width
    model_path: str = "yolov8n.pt"

    # Model labels accepted for each cricket class
    ball_labels: tuple[str, ...] = ("sports ball", "ball", "cricket ball")
    bat_labels: tuple[str, ...] = ("baseball bat", "tennis racket", "bat")
    player_labels: tuple[str, ...] = ("person", "player")
    stumps_labels: tuple[str, ...] = ("stumps", "wicket")


@dataclass(frozen=True)
class RuleConfig:
    """Rule engine zones and debounce settings."""
    frame_width: int = 1280
    frame_height: int = 720
    boundary_top_percent: float = 0.2  # Top 20%
    ground_line_percent: float = 0.7  # Bottom 30% counts as ground
    boundary_side_percent: float = 0.1  # Left/right 10%
    catch_distance: float = 100.0  # pixels
    hit_distance: float = 80.0  # pixels
    cooldown_ms: int = 500
    max_trajectory_history: int = 30  # 1 second at 30 FPS
    min_trajectory_points: int = 5
    projection_steps: int = 10


@dataclass(frozen=True)
class ScoringConfig:
    """Live scoring engine settings."""
    total_overs: int = 20
    auto_save: bool = True
    default_venue: str = "Live Match"


@dataclass(frozen=True)
class StorageConfig:
    """Where durable state lives."""
    data_dir: Path = field(default_factory=lambda: Path("data"))
    database_file: str = "cricket.db"
    kv_file: str = "cricket_state.json"

    @property
    def database_path(self) -> Path:
        return self.data_dir / self.database_file

    @property
    def kv_path(self) -> Path:
        return self.data_dir / self.kv_file


@dataclass
class EngineConfig:
    """Top-level pipeline configuration."""
    camera: CameraConfig = field(default_factory=CameraConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    rules: RuleConfig = field(default_factory=RuleConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Load configuration from environment variables."""
        camera = CameraConfig(
            device_id=os.getenv("CRICKET_CAMERA_DEVICE") or None,
            width=int(os.getenv("CRICKET_FRAME_WIDTH", "1280")),
            height=int(os.getenv("CRICKET_FRAME_HEIGHT", "720")),
        )
        return cls(
            camera=camera,
            detection=DetectionConfig(
                model_path=os.getenv("CRICKET_MODEL_PATH", "yolov8n.pt"),
            ),
            rules=RuleConfig(
                frame_width=camera.width,
                frame_height=camera.height,
                cooldown_ms=int(os.getenv("CRICKET_COOLDOWN_MS", "500")),
            ),
            scoring=ScoringConfig(
                total_overs=int(os.getenv("CRICKET_TOTAL_OVERS", "20")),
            ),
            storage=StorageConfig(
                data_dir=Path(os.getenv("CRICKET_DATA_DIR", "data")),
            ),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


# Balls in a (legal) over
BALLS_PER_OVER = 6

# Wickets that end an innings
MAX_WICKETS = 10
