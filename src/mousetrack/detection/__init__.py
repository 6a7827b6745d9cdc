# src/mousetrack/detection/__init__.py
"""
Detection module for silhouette, contour and motion extraction
"""

from .parameters import (
    TrackingParameters, BackgroundParameters, BackgroundSpec, MorphologyStage,
    RegionOfInterest, SmoothingSettings, CalibrationSettings,
    Channel, VideoMode, MouseIntensity, MorphOperation, BackgroundMode,
)
from .silhouette import SilhouetteExtractor
from .contour import extract_contour, compute_centroid, is_nan_contour
from .motion import motion_measure

__all__ = ['TrackingParameters', 'BackgroundParameters', 'BackgroundSpec', 'MorphologyStage',
           'RegionOfInterest', 'SmoothingSettings', 'CalibrationSettings',
           'Channel', 'VideoMode', 'MouseIntensity', 'MorphOperation', 'BackgroundMode',
           'SilhouetteExtractor', 'extract_contour', 'compute_centroid', 'is_nan_contour',
           'motion_measure']
