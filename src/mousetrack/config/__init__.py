# src/mousetrack/config/__init__.py
"""
Configuration module for tracking parameters
"""

from .tracking_config import (
    TRACKING_PARAMETERS,
    MORPHOLOGY_STAGES,
    BACKGROUND_PARAMETERS,
    PIPELINE_CONSTANTS,
    BATCH_PROCESSING,
    LOGGING_FORMAT,
)

__all__ = ['TRACKING_PARAMETERS', 'MORPHOLOGY_STAGES', 'BACKGROUND_PARAMETERS',
           'PIPELINE_CONSTANTS', 'BATCH_PROCESSING', 'LOGGING_FORMAT']
