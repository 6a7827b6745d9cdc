"""
Motion Estimator
Frame-to-frame change of the silhouette
"""

from typing import Optional

import numpy as np


def motion_measure(current: Optional[np.ndarray], previous: Optional[np.ndarray]) -> float:
    """Newly covered area as a percentage of the previous silhouette area.

    100 * |current AND NOT previous| / |previous|. Pixels the animal left are
    not counted. NaN when either mask is missing.

    The value is not bounded by 100: a silhouette that grows by more than its
    previous area reports more than 100 %. It is 0 for identical masks.
    """
    if current is None or previous is None:
        return float('nan')
    previous_area = int(np.count_nonzero(previous))
    if previous_area == 0:
        return float('nan')
    newly_covered = int(np.count_nonzero(current & ~previous))
    return 100.0 * newly_covered / previous_area
