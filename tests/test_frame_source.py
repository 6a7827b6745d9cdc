"""
Unit Tests for Frame Sources
"""

import os
import shutil
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import numpy as np

# Add src to path
project_root = Path(__file__).parent.parent
sys.path.append(str(project_root / "src"))

from mousetrack.errors import SourceReadFailure
from mousetrack.video.frame_source import (
    ArrayFrameSource, NpyFrameSource, VideoFileSource, open_frame_source,
)


class TestArrayFrameSource(unittest.TestCase):
    """Test the in-memory frame source."""

    def setUp(self):
        """Set up test fixtures."""
        self.frames = np.arange(5, dtype=np.uint8)[:, None, None] * np.ones((1, 4, 4), dtype=np.uint8)
        self.source = ArrayFrameSource(self.frames, frame_rate=10.0)

    def test_sequential_reading(self):
        """Test reading every frame with its timestamp."""
        seen = []
        while self.source.has_next_frame():
            timestamp = self.source.current_time
            seen.append((timestamp, int(self.source.read_next_frame()[0, 0])))
        self.assertEqual([value for _, value in seen], [0, 1, 2, 3, 4])
        self.assertAlmostEqual(seen[-1][0], 0.4)
        self.assertAlmostEqual(self.source.duration, 0.5)
        with self.assertRaises(SourceReadFailure):
            self.source.read_next_frame()

    def test_seek(self):
        """Test random access by time."""
        self.source.seek(0.3)
        self.assertEqual(int(self.source.read_next_frame()[0, 0]), 3)
        self.source.seek(0.0)
        self.assertEqual(int(self.source.read_next_frame()[0, 0]), 0)

    def test_clone_has_own_position(self):
        """Test that clones do not share the read position."""
        self.source.read_next_frame()
        clone = self.source.clone()
        self.assertEqual(int(clone.read_next_frame()[0, 0]), 0)
        self.assertEqual(int(self.source.read_next_frame()[0, 0]), 1)

    def test_invalid_frame_rate(self):
        """Test that a non-positive rate is rejected."""
        with self.assertRaises(SourceReadFailure):
            ArrayFrameSource(self.frames, frame_rate=0)


class TestFileSources(unittest.TestCase):
    """Test opening frame sources from files."""

    def setUp(self):
        """Set up test fixtures."""
        self.tmp_dir = tempfile.mkdtemp()

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.tmp_dir)

    def test_npy_stack(self):
        """Test opening a saved frame stack."""
        path = os.path.join(self.tmp_dir, 'stack.npy')
        np.save(path, np.zeros((3, 6, 8, 3), dtype=np.uint8))
        with open_frame_source(path) as source:
            self.assertIsInstance(source, NpyFrameSource)
            self.assertEqual(source.estimated_frame_count(), 3)
            self.assertEqual(source.read_next_frame().shape, (6, 8, 3))

    def test_npy_wrong_shape(self):
        """Test that a stack that is not a sequence of images is rejected."""
        path = os.path.join(self.tmp_dir, 'flat.npy')
        np.save(path, np.zeros(10, dtype=np.uint8))
        with self.assertRaises(SourceReadFailure):
            open_frame_source(path)

    def test_missing_file(self):
        """Test that a missing file is a read failure."""
        with self.assertRaises(SourceReadFailure):
            open_frame_source(os.path.join(self.tmp_dir, 'nothing.avi'))

    def test_undecodable_video(self):
        """Test that a file OpenCV cannot open is a read failure."""
        path = os.path.join(self.tmp_dir, 'broken.avi')
        with open(path, 'wb') as f:
            f.write(b'not a video')
        with self.assertRaises(SourceReadFailure):
            open_frame_source(path)

    def test_video_without_frame_rate_is_released(self):
        """Test that the capture is closed when the file reports no frame rate."""
        capture = mock.MagicMock()
        capture.isOpened.return_value = True
        capture.get.return_value = 0.0
        with mock.patch('mousetrack.video.frame_source.cv2.VideoCapture', return_value=capture):
            with self.assertRaises(SourceReadFailure):
                VideoFileSource(os.path.join(self.tmp_dir, 'no_rate.avi'))
        capture.release.assert_called_once()


if __name__ == '__main__':
    unittest.main()
