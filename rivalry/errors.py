"""
rivalry.errors — Exception hierarchy
=====================================
"""

from __future__ import annotations


class RivalryError(Exception):
    """Base class for every error raised by Rivalry."""


class ConfigError(RivalryError):
    """``config.yaml`` holds a value we cannot use."""


class EventSourceError(RivalryError):
    """The event source could not deliver a batch (HTTP error, bad payload)."""


class NarratorError(RivalryError):
    """The narrative service failed or returned something unusable."""
