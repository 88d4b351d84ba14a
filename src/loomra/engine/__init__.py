# src/loomra/engine/__init__.py
"""
Data-consistency engine for Loomra.

- integrity: goal/habit deletion with dependent resolution
- streaks: streak statistics over completion history
- transfer: atomic whole-database export/import
"""

from .integrity import IntegrityCoordinator
from .streaks import StreakEngine
from .transfer import BulkTransfer

__all__ = ["IntegrityCoordinator", "StreakEngine", "BulkTransfer"]
