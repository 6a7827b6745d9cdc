"""
Tracking Log
One JSON log per recording basename, keyed by video mode
"""

import json
import logging
import os
import tempfile
import threading
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..config.tracking_config import PIPELINE_CONSTANTS
from ..detection.contour import is_nan_contour
from ..detection.parameters import TrackingParameters, VideoMode
from ..errors import SourceReadFailure
from ..records import FrameRecord
from ..serialization import to_jsonable

logger = logging.getLogger(__name__)

THERMAL_MARKER = PIPELINE_CONSTANTS['thermal_marker']
LOG_SUFFIX = PIPELINE_CONSTANTS['log_suffix']
TIMESTAMPS_SUFFIX = PIPELINE_CONSTANTS['timestamps_suffix']

# Serialises read-merge-write cycles on the same log within one process
_path_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
_path_locks_guard = threading.Lock()


@dataclass(frozen=True)
class SourceDescription:
    """What the file name tells about a recording."""
    source_path: str
    basename: str
    video_mode: VideoMode
    log_path: str


def describe_source(path: str) -> SourceDescription:
    """Basename, video mode and log path of a recording.

    ``<name>_IR.<ext>`` files are thermal recordings of ``<name>``; anything
    else is an RGB recording named after its stem.
    """
    path = str(path)
    directory, filename = os.path.split(path)
    if THERMAL_MARKER + '.' in filename:
        basename = filename.split(THERMAL_MARKER)[0]
        video_mode = VideoMode.THERMAL
    else:
        basename = Path(filename).stem
        video_mode = VideoMode.RGB
    log_path = os.path.join(directory, basename + LOG_SUFFIX)
    return SourceDescription(path, basename, video_mode, log_path)


def log_lock(log_path: str) -> threading.Lock:
    key = os.path.abspath(log_path)
    with _path_locks_guard:
        return _path_locks[key]


def load_log(log_path: str) -> dict:
    """Current content of a log, or an empty log if the file does not exist."""
    if not os.path.isfile(log_path):
        return {}
    with open(log_path, 'r') as f:
        try:
            return json.load(f)
        except ValueError as e:
            raise SourceReadFailure(f"Tracking log {log_path} is not valid JSON: {e}") from e


def save_log(log: dict, log_path: str):
    """Write a log atomically: readers see either the old or the new file."""
    directory = os.path.dirname(os.path.abspath(log_path))
    fd, tmp_path = tempfile.mkstemp(prefix='.tracking-', suffix='.tmp', dir=directory)
    try:
        with os.fdopen(fd, 'w') as f:
            json.dump(log, f, indent=2)
        os.replace(tmp_path, log_path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def has_results(log: dict, video_mode: VideoMode) -> bool:
    """True if the log already holds tracking results for this video mode."""
    section = log.get(video_mode.value) or {}
    return bool(section.get('Center'))


def read_timestamps_file(source_path: str) -> Optional[List[float]]:
    """Second column of the ``.DVT`` file saved next to an RGB recording, if any."""
    stem, _ = os.path.splitext(source_path)
    dvt_path = stem + TIMESTAMPS_SUFFIX
    if not os.path.isfile(dvt_path):
        return None
    table = np.loadtxt(dvt_path, delimiter=',', ndmin=2)
    if table.shape[1] < 2:
        logger.warning(f"{dvt_path} has no time column, ignored")
        return None
    return to_jsonable(table[:, 1])


def _contour_to_json(contour: np.ndarray) -> list:
    if is_nan_contour(contour):
        return [float('nan'), float('nan')]
    return to_jsonable(contour)


def merge_results(log: dict, video_mode: VideoMode, parameters: TrackingParameters,
                  records: Sequence[FrameRecord], times: Optional[List[float]] = None) -> dict:
    """Replace the results of one video mode, leaving other modes untouched."""
    merged = dict(log)
    section = dict(merged.get(video_mode.value) or {})
    section.update({
        'Parameters': parameters.to_dict(),
        'Contour': [_contour_to_json(record.contour) for record in records],
        'Center': [[float(record.centroid[0]), float(record.centroid[1])] for record in records],
        'MotionMeasure': [float(record.motion_measure) for record in records],
        'MaskPixels': [int(record.area) if record.tracked else float('nan') for record in records],
        'MovieTimes': [float(record.timestamp) for record in records],
        'UnitsPerPixel': parameters.calibration.units_per_pixel(),
    })
    if times is not None:
        section['Times'] = times
    merged[video_mode.value] = section
    return merged


def persist_results(log_path: str, source_path: str, video_mode: VideoMode,
                    parameters: TrackingParameters, records: Sequence[FrameRecord]):
    """Reload the log, merge one run's results and write it back."""
    times = read_timestamps_file(source_path) if video_mode is VideoMode.RGB else None
    with log_lock(log_path):
        # Reload right before writing: another mode of the same recording may have finished meanwhile
        log = load_log(log_path)
        save_log(merge_results(log, video_mode, parameters, records, times), log_path)
