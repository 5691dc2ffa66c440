"""
Camera frame source.

Wraps a video capture device behind a small pull-based interface: start
the device, pull the latest frame whenever the frame loop wants one,
stop it again. Includes a simulated source for demos and tests.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Union

import cv2
import numpy as np

from cricket_live.config import CameraConfig

logger = logging.getLogger(__name__)

Frame = np.ndarray

# Labels that identify a rear-facing camera on devices that expose several
REAR_CAMERA_HINTS = ("rear", "back", "environment")


class CameraErrorType(Enum):
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    NOT_READABLE = "NOT_READABLE"
    UNKNOWN = "UNKNOWN"


_USER_MESSAGES = {
    CameraErrorType.PERMISSION_DENIED: "Camera permission denied. Please allow camera access.",
    CameraErrorType.NOT_FOUND: "No camera found. Please connect a camera.",
    CameraErrorType.NOT_READABLE: "Camera is already in use by another application.",
    CameraErrorType.UNKNOWN: "Unknown camera error.",
}


class CameraError(Exception):
    """Device or permission failure while acquiring or reading the camera."""

    def __init__(self, error_type: CameraErrorType, message: str = ""):
        self.error_type = error_type
        super().__init__(message or _USER_MESSAGES[error_type])

    @property
    def user_message(self) -> str:
        """Short actionable text suitable for showing to an operator."""
        return _USER_MESSAGES[self.error_type]


@dataclass
class VideoDevice:
    device_id: str
    label: str
    kind: str = "videoinput"


@dataclass
class CameraStats:
    is_active: bool
    current_device_id: Optional[str]
    resolution: Optional[tuple[int, int]]  # (width, height)
    frame_rate: int
    frames_extracted: int


class FramePacer:
    """Advisory frame timing at a target FPS.

    Does not pull frames itself. Consumers ask how long to wait until the
    next tick and how many ticks they missed while busy.
    """

    def __init__(self, frame_rate: int = 30, clock: Callable[[], float] = time.monotonic):
        if frame_rate <= 0:
            raise ValueError("frame_rate must be positive")
        self.frame_rate = frame_rate
        self.interval = 1.0 / frame_rate
        self._clock = clock
        self._next_tick: Optional[float] = None

    def reset(self) -> None:
        self._next_tick = self._clock() + self.interval

    def next_tick(self) -> tuple[float, int]:
        """Return (seconds to wait, ticks missed) and advance the schedule."""
        now = self._clock()
        if self._next_tick is None:
            self._next_tick = now
        missed = 0
        if now > self._next_tick:
            missed = int((now - self._next_tick) / self.interval)
            self._next_tick += missed * self.interval
        wait = max(0.0, self._next_tick - now)
        self._next_tick += self.interval
        return wait, missed


class FrameSource(ABC):
    """Abstract camera frame source."""

    def __init__(self) -> None:
        self._active = False
        self._device_id: Optional[str] = None
        self._resolution: Optional[tuple[int, int]] = None
        self._frame_rate = 30
        self._frames_extracted = 0
        self.pacer = FramePacer(self._frame_rate)

    @abstractmethod
    def start(self, config: Optional[CameraConfig] = None) -> None:
        """Acquire the device. Raises CameraError with nothing left open."""

    @abstractmethod
    def stop(self) -> None:
        """Release the device. Safe to call when already stopped."""

    @abstractmethod
    def get_frame(self) -> Optional[Frame]:
        """Latest frame, or None when the source is not active."""

    @abstractmethod
    def list_devices(self) -> list[VideoDevice]:
        """Available video input devices."""

    def is_active(self) -> bool:
        return self._active

    def get_stats(self) -> CameraStats:
        return CameraStats(
            is_active=self._active,
            current_device_id=self._device_id,
            resolution=self._resolution,
            frame_rate=self._frame_rate,
            frames_extracted=self._frames_extracted,
        )

    def _mark_started(self, device_id: str, resolution: tuple[int, int], frame_rate: int) -> None:
        self._active = True
        self._device_id = device_id
        self._resolution = resolution
        self._frame_rate = frame_rate
        self._frames_extracted = 0
        self.pacer = FramePacer(frame_rate)
        self.pacer.reset()
        logger.info(
            "Camera %s started: %dx%d @ %d fps",
            device_id, resolution[0], resolution[1], frame_rate,
        )

    def _mark_stopped(self) -> None:
        if self._active:
            logger.info("Camera %s stopped", self._device_id)
        self._active = False
        self._device_id = None
        self._resolution = None


class OpenCVFrameSource(FrameSource):
    """Frame source backed by cv2.VideoCapture."""

    def __init__(
        self,
        capture_factory: Callable[[Union[int, str]], Any] = cv2.VideoCapture,
        device_root: Path = Path("/sys/class/video4linux"),
    ):
        super().__init__()
        self._capture_factory = capture_factory
        self._device_root = device_root
        self._capture: Any = None

    def start(self, config: Optional[CameraConfig] = None) -> None:
        config = config or CameraConfig()
        if self._active:
            self.stop()

        device = self._resolve_device(config.device_id)
        capture = None
        try:
            capture = self._capture_factory(device)
            if not capture.isOpened():
                raise CameraError(CameraErrorType.NOT_FOUND, f"Could not open camera {device}")
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, config.width)
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, config.height)
            capture.set(cv2.CAP_PROP_FPS, config.frame_rate)
            ok, frame = capture.read()
            if not ok or frame is None:
                raise CameraError(CameraErrorType.NOT_READABLE, f"Camera {device} returned no frame")
        except CameraError:
            self._release(capture)
            raise
        except PermissionError as e:
            self._release(capture)
            raise CameraError(CameraErrorType.PERMISSION_DENIED, str(e)) from e
        except Exception as e:
            self._release(capture)
            raise CameraError(CameraErrorType.UNKNOWN, str(e)) from e

        self._capture = capture
        height, width = frame.shape[:2]
        self._mark_started(str(device), (width, height), config.frame_rate)

    def stop(self) -> None:
        self._release(self._capture)
        self._capture = None
        self._mark_stopped()

    def get_frame(self) -> Optional[Frame]:
        if not self._active or self._capture is None:
            return None
        ok, frame = self._capture.read()
        if not ok or frame is None:
            raise CameraError(CameraErrorType.NOT_READABLE, "Frame read failed")
        self._frames_extracted += 1
        return frame

    def list_devices(self) -> list[VideoDevice]:
        """Enumerate V4L2 devices by their sysfs name."""
        if not self._device_root.exists():
            return []
        devices = []
        for entry in sorted(self._device_root.glob("video*")):
            name_file = entry / "name"
            label = name_file.read_text().strip() if name_file.exists() else entry.name
            devices.append(VideoDevice(device_id=entry.name[len("video"):], label=label))
        return devices

    def _resolve_device(self, device_id: Optional[str]) -> Union[int, str]:
        if device_id is not None:
            return int(device_id) if device_id.isdigit() else device_id
        for device in self.list_devices():
            if any(hint in device.label.lower() for hint in REAR_CAMERA_HINTS):
                logger.debug("Preferring rear camera %s (%s)", device.device_id, device.label)
                return int(device.device_id)
        return 0

    @staticmethod
    def _release(capture: Any) -> None:
        if capture is not None:
            capture.release()


class SimulatedFrameSource(FrameSource):
    """Frame source that serves prepared (or blank) frames.

    If frames are given they are replayed in a cycle; otherwise every
    frame is black at the configured resolution.
    """

    def __init__(
        self,
        frames: Optional[list[Frame]] = None,
        fail_with: Optional[CameraErrorType] = None,
    ):
        super().__init__()
        self._frames = list(frames or [])
        self._fail_with = fail_with
        self._shape = (720, 1280, 3)

    def start(self, config: Optional[CameraConfig] = None) -> None:
        config = config or CameraConfig()
        if self._fail_with is not None:
            raise CameraError(self._fail_with)
        self._shape = (config.height, config.width, 3)
        self._mark_started(config.device_id or "sim-0", (config.width, config.height), config.frame_rate)

    def stop(self) -> None:
        self._mark_stopped()

    def get_frame(self) -> Optional[Frame]:
        if not self._active:
            return None
        if self._frames:
            frame = self._frames[self._frames_extracted % len(self._frames)]
        else:
            frame = np.zeros(self._shape, dtype=np.uint8)
        self._frames_extracted += 1
        return frame

    def list_devices(self) -> list[VideoDevice]:
        return [VideoDevice(device_id="sim-0", label="Simulated camera (environment)")]
