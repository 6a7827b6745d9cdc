"""
Silhouette Extractor
Background removal, thresholding and morphological cleanup of single frames
"""

import logging
from functools import lru_cache
from typing import Optional

import cv2
import numpy as np

from ..config.tracking_config import PIPELINE_CONSTANTS
from .channels import extract_channel, select_background, to_intensity
from .parameters import MouseIntensity, TrackingParameters

MIN_BLOB_AREA = PIPELINE_CONSTANTS['min_blob_area']
PRE_OPEN_RADIUS = PIPELINE_CONSTANTS['pre_open_radius']
CONNECTIVITY = PIPELINE_CONSTANTS['blob_connectivity']


@lru_cache(maxsize=32)
def disk_element(radius: int) -> np.ndarray:
    """Disk-shaped structuring element of the given radius."""
    size = 2 * int(radius) + 1
    return cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (size, size))


def normalize_polarity(frame: np.ndarray, background: Optional[np.ndarray],
                       mouse_intensity: MouseIntensity) -> np.ndarray:
    """Remove the background and make the animal bright.

    Arithmetic runs in a signed type and is clipped to [0, 255] before the
    cast back to 8 bits, so nothing wraps around.
    """
    values = frame.astype(np.int16)
    if mouse_intensity is MouseIntensity.LOW:
        if background is not None:
            result = 255 - np.clip(255 + values - background.astype(np.int16), 0, 255)
        else:
            result = 255 - values
    else:
        if background is not None:
            result = np.clip(values - background.astype(np.int16), 0, 255)
        else:
            result = values
    return np.clip(result, 0, 255).astype(np.uint8)


def apply_reflection_penalty(intensity: np.ndarray, outside_mask: np.ndarray, penalty: float) -> np.ndarray:
    """Integer-divide intensities outside the region of interest."""
    result = intensity.copy()
    result[outside_mask] = np.floor(intensity[outside_mask] / penalty).astype(np.uint8)
    return result


def threshold_intensity(intensity: np.ndarray, threshold: int) -> np.ndarray:
    return intensity > threshold


def _components(mask: np.ndarray):
    return cv2.connectedComponentsWithStats(mask.astype(np.uint8), connectivity=CONNECTIVITY)


def remove_small_components(mask: np.ndarray, min_area: int) -> np.ndarray:
    """Drop connected components with fewer than ``min_area`` pixels."""
    if not mask.any():
        return mask
    _, labels, stats, _ = _components(mask)
    keep = stats[:, cv2.CC_STAT_AREA] >= min_area
    keep[0] = False
    return keep[labels]


def morph_close(mask: np.ndarray, radius: int) -> np.ndarray:
    closed = cv2.morphologyEx(mask.astype(np.uint8), cv2.MORPH_CLOSE, disk_element(radius))
    return closed.astype(bool)


def morph_open(mask: np.ndarray, radius: int) -> np.ndarray:
    opened = cv2.morphologyEx(mask.astype(np.uint8), cv2.MORPH_OPEN, disk_element(radius))
    return opened.astype(bool)


def discard_outside_components(mask: np.ndarray, inclusion_mask: np.ndarray) -> np.ndarray:
    """Keep only components touching the inclusion mask.

    If nothing would survive, the mask is returned unchanged.
    """
    if not mask.any():
        return mask
    _, labels, _, _ = _components(mask)
    touching = np.unique(labels[mask & inclusion_mask])
    touching = touching[touching != 0]
    kept = np.isin(labels, touching)
    if not kept.any():
        return mask
    return kept


def keep_largest_component(mask: np.ndarray) -> Optional[np.ndarray]:
    """Largest connected component, or None when nothing (or everything) is foreground."""
    if not mask.any():
        return None
    count, labels, stats, _ = _components(mask)
    if count <= 1:
        return None
    largest = 1 + int(np.argmax(stats[1:, cv2.CC_STAT_AREA]))
    blob = labels == largest
    if blob.all():
        return None
    return blob


class SilhouetteExtractor:
    """Turns frames into the tracked animal's silhouette."""

    def __init__(self, params: TrackingParameters):
        """Initialize the extractor with a frozen parameter snapshot."""
        self.params = params
        self.logger = logging.getLogger(__name__)

        self.mc1 = params.morphology[0]
        self.size_filter = params.morphology[1]
        self.mc2 = params.morphology[2]
        self.mo1 = params.morphology[3]
        self.use_reflection_penalty = params.reflection_penalty > 1 and params.mask is not None

    def working_intensity(self, frame: np.ndarray) -> np.ndarray:
        """Single-channel 8-bit image where the animal is bright."""
        params = self.params
        planes = extract_channel(frame, params.channel, params.video_mode)

        background = None
        if params.background.is_active:
            background = select_background(params.background.image, params.channel, params.video_mode, frame)

        intensity = to_intensity(normalize_polarity(planes, background, params.mouse_intensity))
        if self.use_reflection_penalty:
            intensity = apply_reflection_penalty(intensity, params.outside_mask, params.reflection_penalty)
        return intensity

    def binary_mask(self, intensity: np.ndarray) -> np.ndarray:
        """Thresholded and cleaned mask, before the largest blob is picked."""
        params = self.params
        bw = threshold_intensity(intensity, params.threshold)

        # Pre-filter: speckle floor around a small opening
        bw = remove_small_components(bw, MIN_BLOB_AREA)
        if self.mo1.enabled:
            bw = morph_open(bw, PRE_OPEN_RADIUS)
        bw = remove_small_components(bw, MIN_BLOB_AREA)

        # Residual reflections that never reach the region of interest
        if self.use_reflection_penalty:
            bw = discard_outside_components(bw, params.mask)

        if self.mc1.enabled:
            bw = morph_close(bw, self.mc1.size)
        if self.size_filter.enabled:
            bw = remove_small_components(bw, self.size_filter.size)
        if self.mc2.enabled:
            bw = morph_close(bw, self.mc2.size)
        if self.mo1.enabled:
            bw = morph_open(bw, self.mo1.size)
        return bw

    def extract(self, frame: np.ndarray) -> Optional[np.ndarray]:
        """Silhouette mask of the animal, or None if no object was found."""
        silhouette = keep_largest_component(self.binary_mask(self.working_intensity(frame)))
        if silhouette is None:
            self.logger.debug("No object found in frame")
        return silhouette
