# src/mousetrack/background/__init__.py
"""
Background module for reference image estimation
"""

from .estimator import estimate_background, estimate_auto_background, reduce_stack, sample_frames

__all__ = ['estimate_background', 'estimate_auto_background', 'reduce_stack', 'sample_frames']
