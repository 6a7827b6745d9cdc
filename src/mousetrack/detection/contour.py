"""
Contour & Centroid Extractor
Boundary polygon and centre of gravity of the silhouette
"""

from typing import Optional, Tuple

import cv2
import numpy as np
from scipy.ndimage import correlate1d

from .parameters import SmoothingSettings

NAN_CONTOUR = np.full((1, 2), np.nan)
NAN_CENTROID = (float('nan'), float('nan'))


def is_nan_contour(contour: np.ndarray) -> bool:
    """True for the failed-frame sentinel."""
    return contour.size == 2 and bool(np.all(np.isnan(contour)))


def _window_weights(window: int, method: str) -> np.ndarray:
    offsets = np.arange(window) - window // 2
    if method == 'moving':
        return np.ones(window)
    sigma = window / 5.0
    return np.exp(-0.5 * (offsets / sigma) ** 2)


def smooth_sequence(values: np.ndarray, window: int, method: str = 'gaussian') -> np.ndarray:
    """Weighted moving window over a 1D sequence.

    The window shrinks at both ends of the sequence (weights renormalised over
    the samples that exist). A window of 1 returns the input unchanged.
    """
    values = np.asarray(values, dtype=float)
    if window <= 1 or values.size == 0:
        return values.copy()
    weights = _window_weights(int(window), method)
    totals = correlate1d(values, weights, mode='constant', cval=0.0)
    norms = correlate1d(np.ones_like(values), weights, mode='constant', cval=0.0)
    return totals / norms


def trace_boundary(mask: np.ndarray) -> np.ndarray:
    """Longest boundary loop of a mask as an (N, 2) array of (x, y) vertices."""
    contours, _ = cv2.findContours(mask.astype(np.uint8), cv2.RETR_LIST, cv2.CHAIN_APPROX_NONE)
    if not contours:
        return NAN_CONTOUR.copy()
    longest = max(contours, key=len)
    return longest.reshape(-1, 2).astype(float)


def extract_contour(mask: Optional[np.ndarray], smoothing: Optional[SmoothingSettings] = None) -> np.ndarray:
    """Closed, optionally smoothed contour; first vertex repeated at the end."""
    if mask is None:
        return NAN_CONTOUR.copy()
    points = trace_boundary(mask)
    if is_nan_contour(points):
        return points
    if smoothing is not None and smoothing.enabled:
        points = np.column_stack([
            smooth_sequence(points[:, 0], smoothing.window_size, smoothing.method),
            smooth_sequence(points[:, 1], smoothing.window_size, smoothing.method),
        ])
    return np.vstack([points, points[:1]])


def compute_centroid(mask: Optional[np.ndarray]) -> Tuple[float, float]:
    """Mean (x, y) pixel position of the silhouette, zero-based."""
    if mask is None:
        return NAN_CENTROID
    moments = cv2.moments(mask.astype(np.uint8), binaryImage=True)
    if moments['m00'] == 0:
        return NAN_CENTROID
    return (moments['m10'] / moments['m00'], moments['m01'] / moments['m00'])
