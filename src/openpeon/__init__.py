"""openpeon: play short sounds when a coding agent host does things.

Example:
    from openpeon import PeonEngine

    engine = PeonEngine.create()
    engine.start()
    hooks = engine.hooks()
    hooks["event"]({"event": {"type": "session.idle"}})
"""

from .config import PeonConfig, PeonPaths
from .engine import PeonEngine
from .store import MappingStore, StoreResult

__version__ = "0.3.0"

__all__ = [
    "PeonConfig",
    "PeonPaths",
    "PeonEngine",
    "MappingStore",
    "StoreResult",
]
