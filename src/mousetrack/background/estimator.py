"""
Background Estimator
Per-pixel reference image reduced from frames sampled across a clip
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..config.tracking_config import BACKGROUND_PARAMETERS
from ..detection.parameters import BackgroundMode, BackgroundSpec
from ..errors import SourceReadFailure
from ..video.frame_source import FrameSource

logger = logging.getLogger(__name__)


def reduce_stack(stack: np.ndarray, mode: BackgroundMode, percentile: float = 50.0) -> np.ndarray:
    """Reduce a (frames, height, width[, channels]) stack along the frame axis.

    The result is rounded half up and saturated to 8 bits.
    """
    stack = np.asarray(stack)
    if stack.ndim < 3 or stack.shape[0] == 0:
        raise ValueError(f"Expected a non-empty frame stack, got shape {stack.shape}")

    if mode is BackgroundMode.MIN:
        reduced = stack.min(axis=0)
    elif mode is BackgroundMode.MAX:
        reduced = stack.max(axis=0)
    elif mode is BackgroundMode.MEAN:
        reduced = stack.mean(axis=0, dtype=np.float64)
    elif mode is BackgroundMode.MEDIAN:
        reduced = np.median(stack, axis=0)
    else:
        # Hazen plotting position: rank (p/100 * n + 0.5)
        reduced = np.percentile(stack, float(percentile), axis=0, method='hazen')

    reduced = np.floor(np.asarray(reduced, dtype=np.float64) + 0.5)
    return np.clip(reduced, 0, 255).astype(np.uint8)


def _read_frames_at(source: FrameSource, timestamps: Sequence[float]) -> List[Tuple[float, np.ndarray]]:
    """Read one frame per timestamp through a private handle on the source."""
    frames = []
    with source.clone() as handle:
        for timestamp in timestamps:
            handle.seek(timestamp)
            if not handle.has_next_frame():
                logger.warning(f"No frame at {timestamp:.3f}s, sample skipped")
                continue
            frames.append((timestamp, handle.read_next_frame()))
    return frames


def sample_frames(source: FrameSource, timestamps: Sequence[float],
                  max_workers: Optional[int] = None) -> List[np.ndarray]:
    """Frames at the given times, in timestamp order.

    Reads are split across workers, each with its own handle on the source.
    """
    timestamps = list(timestamps)
    if not timestamps:
        return []
    workers = max_workers or BACKGROUND_PARAMETERS['sampling_workers']
    workers = max(1, min(int(workers), len(timestamps)))
    per_worker = int(math.ceil(len(timestamps) / workers))

    samples = []
    with ThreadPoolExecutor(max_workers=workers) as executor:
        tasks = [executor.submit(_read_frames_at, source, timestamps[start:start + per_worker])
                 for start in range(0, len(timestamps), per_worker)]
        for future in as_completed(tasks):
            samples.extend(future.result())

    samples.sort(key=lambda item: item[0])
    return [frame for _, frame in samples]


def estimate_background(spec: BackgroundSpec, frame_source: FrameSource,
                        max_workers: Optional[int] = None) -> Optional[np.ndarray]:
    """Background image for a clip, or None when no sample times are set."""
    if not spec.picked_timestamps:
        logger.info("No background frames picked, background left unset")
        return None

    frames = sample_frames(frame_source, spec.picked_timestamps, max_workers)
    if not frames:
        raise SourceReadFailure("None of the picked background frames could be read")

    shapes = {frame.shape for frame in frames}
    if len(shapes) != 1:
        raise SourceReadFailure(f"Sampled frames differ in shape: {sorted(shapes)}")

    logger.info(f"Estimating {spec.mode.value} background from {len(frames)} frames")
    return reduce_stack(np.stack(frames), spec.mode, spec.percentile)


def estimate_auto_background(spec: BackgroundSpec, frame_source: FrameSource,
                             max_workers: Optional[int] = None) -> Tuple[BackgroundSpec, Optional[np.ndarray]]:
    """Pick ``frames_num`` evenly spaced times over the clip, then estimate."""
    spec = spec.with_auto_timestamps(frame_source.duration, frame_source.frame_rate)
    return spec, estimate_background(spec, frame_source, max_workers)
