"""Kalito memory engine - hybrid conversation memory for a care assistant"""

__version__ = "1.0.0"

from .config import Settings
from .core.engine import MemoryEngine, TurnOutcome, TurnStatus
from .manager import ModelManager

__all__ = ["MemoryEngine", "ModelManager", "Settings", "TurnOutcome", "TurnStatus"]
