"""
Tracking Pipeline
Silhouette -> contour -> centroid -> motion, for single frames and whole files
"""

import logging
import math
import threading
from typing import Callable, List, Optional, Tuple, Union

import numpy as np

from .config.tracking_config import PIPELINE_CONSTANTS
from .detection.contour import extract_contour, compute_centroid
from .detection.motion import motion_measure
from .detection.parameters import TrackingParameters
from .detection.silhouette import SilhouetteExtractor
from .errors import TrackingCancelled
from .records import BatchEntry, FrameRecord
from .video.frame_source import FrameSource, open_frame_source

logger = logging.getLogger(__name__)


def run_single_frame_pipeline(frame: np.ndarray, params: TrackingParameters
                              ) -> Tuple[Optional[np.ndarray], np.ndarray, Tuple[float, float]]:
    """Silhouette mask (or None), contour and centroid of one frame."""
    params.check_frame_shape(frame.shape)
    mask = SilhouetteExtractor(params).extract(frame)
    return mask, extract_contour(mask, params.smoothing), compute_centroid(mask)


def track_frame(frame: np.ndarray, timestamp: float,
                params: Union[TrackingParameters, SilhouetteExtractor],
                previous_mask: Optional[np.ndarray]) -> Tuple[FrameRecord, Optional[np.ndarray]]:
    """Process one frame given the previous frame's silhouette.

    Returns the record and this frame's silhouette, which becomes
    ``previous_mask`` for the next call.
    """
    extractor = params if isinstance(params, SilhouetteExtractor) else SilhouetteExtractor(params)
    mask = extractor.extract(frame)
    record = FrameRecord(
        timestamp=float(timestamp),
        contour=extract_contour(mask, extractor.params.smoothing),
        centroid=compute_centroid(mask),
        motion_measure=motion_measure(mask, previous_mask),
        area=int(np.count_nonzero(mask)) if mask is not None else 0,
    )
    return record, mask


def estimate_frame_count(source: FrameSource) -> int:
    """Buffer size for a run; decoders under-report, so leave a margin."""
    margin = PIPELINE_CONSTANTS['frame_estimate_margin']
    return max(int(math.ceil(margin * source.duration * source.frame_rate)), 0)


def track_source(source: FrameSource, params: TrackingParameters,
                 cancel_event: Optional[threading.Event] = None) -> List[FrameRecord]:
    """Track every remaining frame of a source, in order."""
    extractor = SilhouetteExtractor(params)
    records: List[Optional[FrameRecord]] = [None] * estimate_frame_count(source)
    count = 0
    previous_mask = None

    while source.has_next_frame():
        if cancel_event is not None and cancel_event.is_set():
            raise TrackingCancelled(f"Cancelled after {count} frames")

        timestamp = source.current_time
        frame = source.read_next_frame()
        if count == 0:
            params.check_frame_shape(frame.shape)

        record, previous_mask = track_frame(frame, timestamp, extractor, previous_mask)
        if count < len(records):
            records[count] = record
        else:
            records.append(record)
        count += 1

        if count % 1000 == 0:
            logger.debug(f"Tracked {count} frames")

    return records[:count]


def run_full_pipeline(entry: BatchEntry,
                      source_factory: Callable[[str], FrameSource] = open_frame_source,
                      cancel_event: Optional[threading.Event] = None) -> List[FrameRecord]:
    """Open the entry's file with its own handle and track it from the start."""
    with source_factory(entry.source_path) as source:
        source.seek(0.0)
        return track_source(source, entry.parameters, cancel_event)
