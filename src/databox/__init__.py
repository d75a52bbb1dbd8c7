"""
Deeply encrypted persistent dictionary.

Every string in the stored tree is encrypted individually by an external
command (age by default) before the tree is written to disk as JSON.
"""

from .file_store import AlreadyExistsError, CorruptStoreError, Databox, NotFoundError, StoreIOError
from .models import DataboxConfig

__all__ = [
    "Databox",
    "DataboxConfig",
    "AlreadyExistsError",
    "NotFoundError",
    "CorruptStoreError",
    "StoreIOError",
]
