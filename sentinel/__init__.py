"""Sentinel: harmful-trend detection and automated moderation response."""

__version__ = "0.1.0"
