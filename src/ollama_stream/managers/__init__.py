"""Managers that keep endpoint-wide state for presentation layers.

Available managers:
- ConnectionManager: connection state monitoring
- ModelManager: model selection, pull progress, and deletion
"""

from __future__ import annotations

from .connection import ConnectionManager
from .models import ModelManager

__all__ = ["ConnectionManager", "ModelManager"]
