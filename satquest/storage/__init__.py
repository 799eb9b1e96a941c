"""
Storage package - local progress persistence and the remote profile store.
"""

from .base import LocalProgressStore, RemoteProfileStore
from .factory import get_remote_store
from .local import InMemoryProgressStore, SQLiteProgressStore
from .memory import InMemoryProfileStore

__all__ = [
    "LocalProgressStore",
    "RemoteProfileStore",
    "SQLiteProgressStore",
    "InMemoryProgressStore",
    "InMemoryProfileStore",
    "get_remote_store",
]
