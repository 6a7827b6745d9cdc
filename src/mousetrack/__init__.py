# src/mousetrack/__init__.py
"""
Mouse Silhouette Tracking
Main package initialization
"""

__version__ = "0.1.0"
