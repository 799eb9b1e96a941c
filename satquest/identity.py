"""
Sync identity resolution.

Profile upserts are keyed by either an authenticated user id or a stable
anonymous device id. The device id is a UUID4 persisted in a small file
next to the local progress database.
"""

import logging
import threading
import uuid
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


class IdentityProvider:
    """Resolves the identity used for remote profile writes."""

    def resolve(self) -> Optional[str]:
        raise NotImplementedError


class StaticIdentity(IdentityProvider):
    """A fixed identity, e.g. the id of a signed-in user."""

    def __init__(self, user_id: Optional[str]):
        self.user_id = user_id

    def resolve(self) -> Optional[str]:
        return self.user_id


class DeviceIdentity(IdentityProvider):
    """Anonymous identity persisted on disk; created on first use."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._device_id: Optional[str] = None
        self._lock = threading.Lock()

    def resolve(self) -> Optional[str]:
        with self._lock:
            if self._device_id:
                return self._device_id

            try:
                if self.path.exists():
                    existing = self.path.read_text(encoding="utf-8").strip()
                    if existing:
                        self._device_id = existing
                        return existing

                new_id = str(uuid.uuid4())
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.path.write_text(new_id, encoding="utf-8")
                self._device_id = new_id
                logger.info(f"Created anonymous device id at {self.path}")
                return new_id
            except OSError as e:
                logger.warning(f"Could not resolve device id from {self.path}: {e}")
                return None
