"""Session-scoped key/value storage.

One instance stands for one browser tab: values live exactly as long as the
instance and are never shared with another session.
"""

import logging
from typing import Dict, Optional


logger = logging.getLogger(__name__)


class SessionStorage:
    """In-memory string store bound to a single session."""

    def __init__(self, session_id: Optional[str] = None):
        self.session_id = session_id
        self._values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = str(value)

    def remove(self, key: str) -> None:
        self._values.pop(key, None)

    def clear(self) -> None:
        self._values.clear()
        logger.debug(f"Cleared session storage {self.session_id or ''}".rstrip())

    def __contains__(self, key: str) -> bool:
        return key in self._values
