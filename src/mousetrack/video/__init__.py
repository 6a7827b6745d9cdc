# src/mousetrack/video/__init__.py
"""
Video module for frame sources
"""

from .frame_source import FrameSource, ArrayFrameSource, NpyFrameSource, VideoFileSource, open_frame_source

__all__ = ['FrameSource', 'ArrayFrameSource', 'NpyFrameSource', 'VideoFileSource', 'open_frame_source']
