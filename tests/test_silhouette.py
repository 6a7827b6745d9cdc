"""
Unit Tests for Silhouette Extraction
Polarity, reflection handling, thresholding and blob selection
"""

import sys
import unittest
from pathlib import Path

import numpy as np

# Add src to path
project_root = Path(__file__).parent.parent
sys.path.append(str(project_root / "src"))

from mousetrack.config.tracking_config import MORPHOLOGY_STAGES
from mousetrack.detection.channels import (
    detect_video_mode, extract_channel, is_greyscale_frame, select_background, to_intensity,
)
from mousetrack.detection.parameters import (
    Channel, MorphologyStage, MouseIntensity, RegionOfInterest, TrackingParameters, VideoMode,
)
from mousetrack.detection.silhouette import (
    SilhouetteExtractor, apply_reflection_penalty, discard_outside_components,
    keep_largest_component, normalize_polarity, remove_small_components,
)


def morphology_disabled():
    return tuple(MorphologyStage(stage['name'], stage['operation'], False, stage['size'])
                 for stage in MORPHOLOGY_STAGES)


class TestPolarity(unittest.TestCase):
    """Test background removal formulas at the 8-bit boundaries."""

    def test_inversion_without_background(self):
        """Test that a dark animal becomes bright."""
        frame = np.array([[0, 100, 255]], dtype=np.uint8)
        low = normalize_polarity(frame, None, MouseIntensity.LOW)
        high = normalize_polarity(frame, None, MouseIntensity.HIGH)
        self.assertEqual(low.tolist(), [[255, 155, 0]])
        self.assertEqual(high.tolist(), [[0, 100, 255]])

    def test_low_subtraction_clips(self):
        """Test the inverted subtraction for dark animals."""
        frame = np.array([[10, 200, 0, 255]], dtype=np.uint8)
        background = np.array([[200, 10, 255, 0]], dtype=np.uint8)
        result = normalize_polarity(frame, background, MouseIntensity.LOW)
        # 255 - clip(255 + F - B)
        self.assertEqual(result.tolist(), [[190, 0, 255, 0]])
        self.assertEqual(result.dtype, np.uint8)

    def test_high_subtraction_clips(self):
        """Test the plain subtraction for bright animals."""
        frame = np.array([[10, 200, 0, 255]], dtype=np.uint8)
        background = np.array([[200, 10, 255, 0]], dtype=np.uint8)
        result = normalize_polarity(frame, background, MouseIntensity.HIGH)
        self.assertEqual(result.tolist(), [[0, 190, 0, 255]])

    def test_reflection_penalty_integer_division(self):
        """Test that only pixels outside the mask are divided."""
        intensity = np.array([[200, 200, 101]], dtype=np.uint8)
        outside = np.array([[False, True, True]])
        result = apply_reflection_penalty(intensity, outside, 3)
        self.assertEqual(result.tolist(), [[200, 66, 33]])


class TestChannels(unittest.TestCase):
    """Test channel selection."""

    def test_rgb_channel_selection(self):
        """Test picking one colour plane."""
        frame = np.zeros((4, 4, 3), dtype=np.uint8)
        frame[..., 1] = 7
        plane = extract_channel(frame, Channel.G, VideoMode.RGB)
        self.assertEqual(plane.shape, (4, 4))
        self.assertTrue(np.all(plane == 7))

    def test_thermal_uses_first_channel(self):
        """Test that a three-channel thermal frame uses channel 1."""
        frame = np.zeros((4, 4, 3), dtype=np.uint8)
        frame[..., 0] = 9
        plane = extract_channel(frame, Channel.B, VideoMode.THERMAL)
        self.assertTrue(np.all(plane == 9))

    def test_grey_keeps_colour_planes_until_subtraction(self):
        """Test that Grey removes the background per channel then converts to luminance."""
        frame = np.full((4, 4, 3), 100, dtype=np.uint8)
        background = np.full((4, 4, 3), 40, dtype=np.uint8)
        planes = extract_channel(frame, Channel.GREY, VideoMode.RGB)
        self.assertEqual(planes.shape, (4, 4, 3))
        bg_planes = select_background(background, Channel.GREY, VideoMode.RGB, frame)
        intensity = to_intensity(normalize_polarity(planes, bg_planes, MouseIntensity.HIGH))
        self.assertEqual(intensity.shape, (4, 4))
        self.assertTrue(np.all(intensity == 60))

    def test_greyscale_detection(self):
        """Test relabelling RGB sources whose channels are identical."""
        grey = np.random.RandomState(0).randint(0, 255, (8, 8), dtype=np.uint8)
        colour = np.dstack([grey, grey, grey])
        self.assertTrue(is_greyscale_frame(grey))
        self.assertTrue(is_greyscale_frame(colour))
        self.assertEqual(detect_video_mode(colour, VideoMode.RGB), VideoMode.GREYSCALE)

        colour[0, 0, 2] ^= 1
        self.assertFalse(is_greyscale_frame(colour))
        self.assertEqual(detect_video_mode(colour, VideoMode.RGB), VideoMode.RGB)
        self.assertEqual(detect_video_mode(grey, VideoMode.THERMAL), VideoMode.THERMAL)


class TestComponents(unittest.TestCase):
    """Test connected component helpers."""

    def test_small_components_removed(self):
        """Test the minimum area filter."""
        mask = np.zeros((20, 20), dtype=bool)
        mask[1:4, 1:4] = True      # 9 px
        mask[10:14, 10:14] = True  # 16 px
        filtered = remove_small_components(mask, 10)
        self.assertFalse(filtered[2, 2])
        self.assertTrue(filtered[12, 12])

    def test_outside_components_discarded(self):
        """Test that blobs never touching the inclusion mask are removed."""
        mask = np.zeros((20, 20), dtype=bool)
        mask[1:4, 1:4] = True
        mask[10:14, 10:14] = True
        inclusion = np.zeros((20, 20), dtype=bool)
        inclusion[12:, 12:] = True

        kept = discard_outside_components(mask, inclusion)
        self.assertFalse(kept[2, 2])
        # The whole touching blob survives, not only its overlap
        self.assertTrue(kept[10, 10])

    def test_outside_discard_reverts_when_empty(self):
        """Test that removal is undone when nothing would remain."""
        mask = np.zeros((20, 20), dtype=bool)
        mask[1:4, 1:4] = True
        inclusion = np.zeros((20, 20), dtype=bool)
        inclusion[12:, 12:] = True

        kept = discard_outside_components(mask, inclusion)
        self.assertTrue(np.array_equal(kept, mask))

    def test_largest_component(self):
        """Test keeping the single largest blob."""
        mask = np.zeros((20, 20), dtype=bool)
        mask[1:4, 1:4] = True
        mask[10:15, 10:15] = True
        largest = keep_largest_component(mask)
        self.assertEqual(int(largest.sum()), 25)
        self.assertIsNone(keep_largest_component(np.zeros((5, 5), dtype=bool)))
        self.assertIsNone(keep_largest_component(np.ones((5, 5), dtype=bool)))


class TestSilhouetteExtractor(unittest.TestCase):
    """Test the full silhouette extraction."""

    def test_uniform_frame_has_no_object(self):
        """Test that a flat frame never yields a silhouette."""
        frame = np.full((64, 64), 100, dtype=np.uint8)
        for intensity in ('Low', 'High'):
            for threshold in (0, 99, 100, 154, 155, 200, 255):
                params = TrackingParameters(mouse_intensity=intensity, threshold=threshold)
                self.assertIsNone(SilhouetteExtractor(params).extract(frame),
                                  f"{intensity} threshold {threshold}")

    def test_threshold_monotonicity(self):
        """Test that a lower threshold gives a superset of a higher one."""
        ramp = np.tile(np.linspace(0, 255, 64).astype(np.uint8), (64, 1))
        for intensity in ('High', 'Low'):
            masks = []
            for threshold in (40, 120, 200):
                params = TrackingParameters(mouse_intensity=intensity, threshold=threshold,
                                            morphology=morphology_disabled())
                mask = SilhouetteExtractor(params).extract(ramp)
                self.assertIsNotNone(mask, f"{intensity} threshold {threshold}")
                masks.append(mask)

            for lower, higher in zip(masks, masks[1:]):
                self.assertTrue(np.all(lower | ~higher), intensity)
                self.assertGreater(lower.sum(), higher.sum(), intensity)

            # Low polarity keeps the dark end of the ramp, High the bright end
            column = 0 if intensity == 'Low' else 63
            self.assertTrue(masks[-1][:, column].all(), intensity)

    def test_dark_animal_on_light_floor(self):
        """Test the default Low polarity."""
        frame = np.full((64, 64), 220, dtype=np.uint8)
        frame[20:40, 20:40] = 10
        mask = SilhouetteExtractor(TrackingParameters()).extract(frame)
        self.assertIsNotNone(mask)
        self.assertTrue(mask[30, 30])
        self.assertFalse(mask[5, 5])

    def test_reflection_outside_region_ignored(self):
        """Test that a larger bright reflection outside the region is not tracked."""
        frame = np.zeros((64, 64), dtype=np.uint8)
        frame[30:40, 30:40] = 255   # animal, 100 px
        frame[0:15, 0:15] = 255     # reflection, 225 px
        region = RegionOfInterest('circle', center=(35, 35), radius=15)

        params = TrackingParameters(mouse_intensity='High', threshold=128, reflection_penalty=1.5,
                                    morphology=morphology_disabled(), region=region,
                                    mask=region.to_mask(64, 64))
        mask = SilhouetteExtractor(params).extract(frame)
        self.assertEqual(int(mask.sum()), 100)
        self.assertTrue(mask[35, 35])

        # Without a region the reflection wins
        plain = TrackingParameters(mouse_intensity='High', threshold=128, morphology=morphology_disabled())
        self.assertTrue(SilhouetteExtractor(plain).extract(frame)[5, 5])

    def test_reflection_only_frame_kept(self):
        """Test that residual removal falls back when only the reflection survives."""
        frame = np.zeros((64, 64), dtype=np.uint8)
        frame[0:15, 0:15] = 255
        region = RegionOfInterest('circle', center=(35, 35), radius=15)

        params = TrackingParameters(mouse_intensity='High', threshold=128, reflection_penalty=1.5,
                                    morphology=morphology_disabled(), region=region,
                                    mask=region.to_mask(64, 64))
        mask = SilhouetteExtractor(params).extract(frame)
        self.assertIsNotNone(mask)
        self.assertEqual(int(mask.sum()), 225)

    def test_background_subtraction(self):
        """Test that static clutter present in the background is removed."""
        background = np.full((64, 64), 200, dtype=np.uint8)
        background[0:10, 0:10] = 30   # dark clutter
        frame = background.copy()
        frame[30:45, 30:45] = 20      # animal

        params = TrackingParameters(threshold=80).with_background(background)
        mask = SilhouetteExtractor(params).extract(frame)
        self.assertTrue(mask[37, 37])
        self.assertFalse(mask[5, 5])


if __name__ == '__main__':
    unittest.main()
