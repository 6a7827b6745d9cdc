"""
Channel Extraction
Picks the intensity channel(s) used for tracking from raw frames
"""

import logging
from typing import Optional, Union

import cv2
import numpy as np

from .parameters import Channel, VideoMode

logger = logging.getLogger(__name__)

_CHANNEL_INDEX = {Channel.R: 0, Channel.G: 1, Channel.B: 2}


def channel_selector(channel: Channel, video_mode: VideoMode, frame: np.ndarray) -> Union[int, slice, None]:
    """Index into the last axis of a frame, or None for single-channel frames."""
    if frame.ndim == 2:
        return None
    if video_mode.is_single_channel:
        return 0
    if channel is Channel.GREY:
        return slice(None)
    return _CHANNEL_INDEX[channel]


def extract_channel(frame: np.ndarray, channel: Channel, video_mode: VideoMode) -> np.ndarray:
    """Channel(s) used for tracking.

    Returns a 2D array, except for RGB sources with the Grey channel where all
    colour channels are kept; those are converted to luminance by
    ``to_intensity`` once the background has been removed per channel.
    """
    selector = channel_selector(channel, video_mode, frame)
    if selector is None:
        return frame
    return frame[..., selector]


def select_background(image: np.ndarray, channel: Channel, video_mode: VideoMode,
                      frame: np.ndarray) -> np.ndarray:
    """Background plane(s) matching ``extract_channel`` for the same frame."""
    if image.ndim == 2:
        if frame.ndim == 3 and channel is Channel.GREY and not video_mode.is_single_channel:
            return image[..., np.newaxis]
        return image
    selector = channel_selector(channel, video_mode, frame)
    if selector is None:
        return image[..., 0]
    return image[..., selector]


def to_intensity(array: np.ndarray) -> np.ndarray:
    """Collapse a working array to a single 8-bit intensity plane."""
    if array.ndim == 3:
        if array.shape[2] == 1:
            return array[..., 0]
        return cv2.cvtColor(np.ascontiguousarray(array), cv2.COLOR_RGB2GRAY)
    return array


def is_greyscale_frame(frame: np.ndarray) -> bool:
    """True for single-channel frames, or colour frames whose channels carry the same data."""
    if frame.ndim == 2 or frame.shape[2] == 1:
        return True
    if frame.min() == frame.max():
        # A flat frame says nothing about the encoding
        return False
    return bool(np.array_equal(frame[..., 0], frame[..., 1]) and np.array_equal(frame[..., 1], frame[..., 2]))


def detect_video_mode(frame: np.ndarray, declared: VideoMode, source_name: Optional[str] = None) -> VideoMode:
    """Refine the mode guessed from the file name using the first decoded frame."""
    if declared is VideoMode.RGB and is_greyscale_frame(frame):
        return VideoMode.GREYSCALE
    if declared is VideoMode.THERMAL and frame.ndim == 3 and frame.shape[2] > 1:
        logger.warning(f"Thermal movie {source_name or ''} is not greyscale; channel 1 will be used")
    return declared
