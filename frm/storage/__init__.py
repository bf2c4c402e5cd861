"""Storage backends for frm.

The engine depends only on the ``Storage`` protocol; the composing
application owns the backend instance and passes it in.
"""

from frm.storage.base import ShortCodeCollision, Storage, StorageTransaction
from frm.storage.memory import MemoryStorage
from frm.storage.sqlite import SQLiteStorage

__all__ = [
    "Storage",
    "StorageTransaction",
    "ShortCodeCollision",
    "MemoryStorage",
    "SQLiteStorage",
]
