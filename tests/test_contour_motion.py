"""
Unit Tests for Contour, Centroid and Motion
"""

import math
import sys
import unittest
from pathlib import Path

import numpy as np

# Add src to path
project_root = Path(__file__).parent.parent
sys.path.append(str(project_root / "src"))

from mousetrack.detection.contour import (
    compute_centroid, extract_contour, is_nan_contour, smooth_sequence, trace_boundary,
)
from mousetrack.detection.motion import motion_measure
from mousetrack.detection.parameters import SmoothingSettings


def square_mask(top=10, left=20, side=5, size=40):
    mask = np.zeros((size, size), dtype=bool)
    mask[top:top + side, left:left + side] = True
    return mask


class TestContour(unittest.TestCase):
    """Test contour tracing and smoothing."""

    def test_failed_frame_sentinel(self):
        """Test NaN outputs for a missing silhouette."""
        contour = extract_contour(None)
        self.assertEqual(contour.size, 2)
        self.assertTrue(is_nan_contour(contour))
        self.assertTrue(all(math.isnan(v) for v in compute_centroid(None)))

    def test_contour_is_closed(self):
        """Test that the first vertex is repeated at the end."""
        contour = extract_contour(square_mask(), SmoothingSettings(enabled=True, window_size=4))
        self.assertTrue(np.array_equal(contour[0], contour[-1]))
        self.assertFalse(is_nan_contour(contour))

    def test_window_one_is_identity(self):
        """Test that a one-vertex window leaves the polygon unchanged."""
        mask = square_mask()
        raw = trace_boundary(mask)
        unsmoothed = extract_contour(mask, SmoothingSettings(enabled=False))
        window_one = extract_contour(mask, SmoothingSettings(enabled=True, window_size=1))

        self.assertTrue(np.array_equal(unsmoothed[:-1], raw))
        self.assertTrue(np.array_equal(window_one, unsmoothed))

    def test_smoothing_preserves_constants(self):
        """Test that end renormalisation keeps a constant sequence constant."""
        values = np.full(12, 5.0)
        for method in ('gaussian', 'moving'):
            self.assertTrue(np.allclose(smooth_sequence(values, 5, method), 5.0))

    def test_moving_average(self):
        """Test the flat window on a short sequence."""
        smoothed = smooth_sequence(np.array([0.0, 3.0, 6.0]), 3, 'moving')
        self.assertTrue(np.allclose(smoothed, [1.5, 3.0, 4.5]))

    def test_longest_loop_selected(self):
        """Test that the longest boundary wins when several loops exist."""
        mask = np.zeros((40, 40), dtype=bool)
        mask[2:5, 2:5] = True
        mask[15:30, 15:30] = True
        contour = trace_boundary(mask)
        self.assertTrue(np.all(contour >= 15))

    def test_centroid(self):
        """Test the image moment centroid in zero-based (x, y)."""
        x, y = compute_centroid(square_mask(top=10, left=20))
        self.assertAlmostEqual(x, 22.0)
        self.assertAlmostEqual(y, 12.0)


class TestMotion(unittest.TestCase):
    """Test the motion measure."""

    def test_identical_masks(self):
        """Test that no movement gives zero."""
        mask = square_mask()
        self.assertEqual(motion_measure(mask, mask.copy()), 0.0)

    def test_one_pixel_shift(self):
        """Test newly covered area of a shifted square."""
        previous = square_mask(left=20)
        current = square_mask(left=21)
        self.assertAlmostEqual(motion_measure(current, previous), 20.0)

    def test_asymmetry(self):
        """Test that uncovered pixels are not counted."""
        previous = square_mask(side=6)
        current = np.zeros_like(previous)
        current[10:13, 20:23] = True   # subset of previous
        self.assertEqual(motion_measure(current, previous), 0.0)

    def test_undefined_cases(self):
        """Test NaN without a valid pair of masks."""
        mask = square_mask()
        self.assertTrue(math.isnan(motion_measure(mask, None)))
        self.assertTrue(math.isnan(motion_measure(None, mask)))
        self.assertTrue(math.isnan(motion_measure(mask, np.zeros_like(mask))))

    def test_growth_exceeds_hundred(self):
        """Test that the measure is not capped at 100 when the silhouette grows."""
        previous = square_mask(side=2)
        current = square_mask(side=10)
        # 96 newly covered pixels over a previous area of 4
        self.assertAlmostEqual(motion_measure(current, previous), 2400.0)


if __name__ == '__main__':
    unittest.main()
