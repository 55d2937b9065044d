"""Sensor platform for All-in-One Presence."""

from __future__ import annotations

from .entities.sensor import async_setup_entry

__all__ = ["async_setup_entry"]
