"""Shared primitives."""

from .clock import Clock, SystemClock, ensure_utc

__all__ = ["Clock", "SystemClock", "ensure_utc"]
