"""
Frame Sources
Sequential, seekable access to video frames with timestamps
"""

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence

import cv2
import numpy as np

from ..config.tracking_config import PIPELINE_CONSTANTS
from ..errors import SourceReadFailure


class FrameSource(ABC):
    """Interface shared by every frame source.

    ``current_time`` is the timestamp (seconds) of the frame that the next
    ``read_next_frame`` call returns. Colour frames are returned as RGB.
    """

    @property
    @abstractmethod
    def current_time(self) -> float:
        ...

    @property
    @abstractmethod
    def duration(self) -> float:
        ...

    @property
    @abstractmethod
    def frame_rate(self) -> float:
        ...

    @abstractmethod
    def has_next_frame(self) -> bool:
        ...

    @abstractmethod
    def read_next_frame(self) -> np.ndarray:
        ...

    @abstractmethod
    def seek(self, time: float):
        ...

    @abstractmethod
    def clone(self) -> 'FrameSource':
        """Independent handle on the same data (own read position)."""

    def close(self):
        pass

    def estimated_frame_count(self) -> int:
        return int(round(self.duration * self.frame_rate))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class ArrayFrameSource(FrameSource):
    """Frames held in memory (synthetic data, pre-extracted stacks)."""

    def __init__(self, frames: Sequence[np.ndarray], frame_rate: float = PIPELINE_CONSTANTS['stack_frame_rate'],
                 timestamps: Optional[Sequence[float]] = None):
        if frame_rate <= 0:
            raise SourceReadFailure(f"Frame rate must be positive, got {frame_rate}")
        self.frames = frames
        self._frame_rate = float(frame_rate)
        if timestamps is None:
            timestamps = np.arange(len(frames)) / self._frame_rate
        if len(timestamps) != len(frames):
            raise SourceReadFailure("One timestamp per frame is required")
        self.timestamps = np.asarray(timestamps, dtype=float)
        self.index = 0

    @property
    def current_time(self) -> float:
        if self.index < len(self.timestamps):
            return float(self.timestamps[self.index])
        return self.duration

    @property
    def duration(self) -> float:
        return len(self.frames) / self._frame_rate

    @property
    def frame_rate(self) -> float:
        return self._frame_rate

    def has_next_frame(self) -> bool:
        return self.index < len(self.frames)

    def read_next_frame(self) -> np.ndarray:
        if not self.has_next_frame():
            raise SourceReadFailure("No frame left to read")
        frame = np.asarray(self.frames[self.index])
        self.index += 1
        return frame

    def seek(self, time: float):
        """Position on the first frame starting at or after ``time``."""
        self.index = int(np.searchsorted(self.timestamps, float(time) - 1e-9, side='left'))

    def clone(self) -> 'ArrayFrameSource':
        return ArrayFrameSource(self.frames, self._frame_rate, self.timestamps)

    def estimated_frame_count(self) -> int:
        return len(self.frames)


class NpyFrameSource(ArrayFrameSource):
    """Frame stack saved with ``np.save`` as (frames, height, width[, channels])."""

    def __init__(self, path: str, frame_rate: float = PIPELINE_CONSTANTS['stack_frame_rate']):
        self.path = str(path)
        try:
            stack = np.load(self.path, mmap_mode='r')
        except (OSError, ValueError) as e:
            raise SourceReadFailure(f"Cannot read frame stack {self.path}: {e}") from e
        if stack.ndim not in (3, 4):
            raise SourceReadFailure(f"Frame stack {self.path} has unsupported shape {stack.shape}")
        super().__init__(stack, frame_rate)

    def clone(self) -> 'NpyFrameSource':
        return NpyFrameSource(self.path, self.frame_rate)


class VideoFileSource(FrameSource):
    """Video file decoded with OpenCV."""

    def __init__(self, path: str):
        self.path = str(path)
        self.logger = logging.getLogger(__name__)
        self.capture = cv2.VideoCapture(self.path)
        if not self.capture.isOpened():
            self.capture.release()
            raise SourceReadFailure(f"Cannot open video file {self.path}")

        self._frame_rate = float(self.capture.get(cv2.CAP_PROP_FPS) or 0.0)
        frame_count = float(self.capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0)
        if self._frame_rate <= 0:
            self.capture.release()
            raise SourceReadFailure(f"Video file {self.path} reports no frame rate")
        self._duration = frame_count / self._frame_rate

        # One frame of read-ahead so has_next_frame() can be answered
        self._pending: Optional[np.ndarray] = None
        self._pending_time = 0.0
        self.logger.debug(f"Opened {self.path}: {frame_count:.0f} frames at {self._frame_rate:.2f} fps")

    @property
    def current_time(self) -> float:
        if self._pending is not None:
            return self._pending_time
        return self.capture.get(cv2.CAP_PROP_POS_MSEC) / 1000.0

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def frame_rate(self) -> float:
        return self._frame_rate

    def has_next_frame(self) -> bool:
        if self._pending is None:
            position = self.capture.get(cv2.CAP_PROP_POS_MSEC) / 1000.0
            try:
                ret, frame = self.capture.read()
            except cv2.error as e:
                raise SourceReadFailure(f"Decoding failed in {self.path}: {e}") from e
            if ret and frame is not None:
                self._pending = frame
                self._pending_time = position
        return self._pending is not None

    def read_next_frame(self) -> np.ndarray:
        if not self.has_next_frame():
            raise SourceReadFailure(f"No frame left to read in {self.path}")
        frame, self._pending = self._pending, None
        if frame.ndim == 3 and frame.shape[2] == 3:
            frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        return frame

    def seek(self, time: float):
        self._pending = None
        self.capture.set(cv2.CAP_PROP_POS_MSEC, max(float(time), 0.0) * 1000.0)

    def clone(self) -> 'VideoFileSource':
        return VideoFileSource(self.path)

    def close(self):
        self._pending = None
        self.capture.release()


def open_frame_source(path: str, frame_rate: Optional[float] = None) -> FrameSource:
    """Open the right source for a file: .npy frame stacks or any video OpenCV can decode."""
    if not os.path.isfile(path):
        raise SourceReadFailure(f"File not found: {path}")
    if Path(path).suffix.lower() == '.npy':
        return NpyFrameSource(path, frame_rate or PIPELINE_CONSTANTS['stack_frame_rate'])
    return VideoFileSource(path)
