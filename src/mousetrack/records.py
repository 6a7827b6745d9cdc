"""
Data containers passed between the pipeline, the batch scheduler and the logs
"""

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .detection.parameters import TrackingParameters, VideoMode


@dataclass(frozen=True, eq=False)
class FrameRecord:
    """Tracking output for one frame."""
    timestamp: float
    contour: np.ndarray              # (N, 2) closed polygon, or the (1, 2) NaN sentinel
    centroid: Tuple[float, float]    # (x, y), NaN pair on failure
    motion_measure: float            # percentage, NaN when undefined
    area: int = 0                    # silhouette pixel count, 0 on failure

    @property
    def tracked(self) -> bool:
        return not math.isnan(self.centroid[0])


@dataclass(frozen=True, eq=False)
class BatchEntry:
    """A prepared file waiting for batch processing."""
    source_path: str
    log_path: str
    video_mode: VideoMode
    basename: str
    parameters: TrackingParameters

    @property
    def key(self) -> Tuple[str, str]:
        return (self.source_path, self.video_mode.value)
