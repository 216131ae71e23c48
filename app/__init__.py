"""Cadence — project coordination and nudge engine."""

__version__ = "0.1.0"
