"""
Storage Factory - Creates the configured remote profile store

Reads the ``remote.backend`` setting and instantiates the matching
RemoteProfileStore implementation. Imports are lazy so the Supabase
client is only required when that backend is selected.
"""

import importlib
import logging
from typing import Any, Dict, Optional

from .base import RemoteProfileStore

logger = logging.getLogger(__name__)

# Registry of available remote backends
REMOTE_BACKENDS = {
    "memory": "satquest.storage.memory.InMemoryProfileStore",
    "supabase": "satquest.storage.supabase_store.SupabaseProfileStore",
}

DEFAULT_BACKEND = "memory"


def get_remote_store(config: Optional[Dict[str, Any]] = None) -> RemoteProfileStore:
    """
    Get the configured remote profile store.

    Args:
        config: Configuration dict (``Config.to_dict()``); defaults apply if None

    Returns:
        RemoteProfileStore: An instance of the configured backend

    Raises:
        ValueError: If the backend is unknown or its credentials are missing
        ImportError: If the backend's package is not installed

    Example:
        >>> get_remote_store({'remote': {'backend': 'memory'}}).store_name
        'memory'
    """
    config = config or {}
    remote_config = config.get("remote", {}) or {}
    backend = str(remote_config.get("backend", DEFAULT_BACKEND)).lower()

    if backend not in REMOTE_BACKENDS:
        available = ", ".join(REMOTE_BACKENDS.keys())
        raise ValueError(f"Unknown remote backend: '{backend}'. Available backends: {available}")

    module_path, class_name = REMOTE_BACKENDS[backend].rsplit(".", 1)

    try:
        module = importlib.import_module(module_path)
    except ImportError as e:
        logger.error(f"Failed to import {backend} backend: {e}")
        raise ImportError(
            f"Failed to load {backend} backend. "
            f"Ensure the required package is installed. Error: {e}"
        )

    store_class = getattr(module, class_name)
    if backend == "supabase":
        return store_class(url=remote_config.get("url"), key=remote_config.get("key"))

    max_members = (config.get("leaderboard", {}) or {}).get("max_members")
    if max_members:
        return store_class(max_members=int(max_members))
    return store_class()
