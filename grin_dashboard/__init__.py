"""Grin node statistics dashboard."""

__version__ = '1.0.0'
