"""
Service module - database connections.

Provides:
- ConnectionManager: named SQLAlchemy engines, created lazily
"""

from __future__ import annotations

from .database import ConnectionManager

__all__ = [
    "ConnectionManager",
]
