"""Known marketplace users cache - identities seen posting at least one listing."""

import json
import os
from typing import Iterable, Optional

from appview.utils.settings import AppViewConfig
from appview.utils.logging import get_structured_logger, mask_did

logger = get_structured_logger(__name__)


class KnownUsersCache:
    """Append-only set of DIDs persisted as a JSON list.

    Best-effort: read and write failures are logged and never raised.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path or AppViewConfig.KNOWN_USERS_PATH

    def all(self) -> list[str]:
        """Known DIDs in first-seen order."""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            logger.warning("Failed to load known users cache", path=self.path, error=str(e))
            return []

        if not isinstance(data, list):
            logger.warning("Known users cache is not a list, ignoring", path=self.path)
            return []
        return [d for d in dict.fromkeys(data) if isinstance(d, str) and d]

    def add(self, did: str) -> bool:
        """Remember ``did``; returns True when it was not known before."""
        return bool(self.add_many([did]))

    def add_many(self, dids: Iterable[str]) -> list[str]:
        """Remember several DIDs at once; returns the newly added ones."""
        known = self.all()
        added = [d for d in dict.fromkeys(dids) if d and d not in known]
        if not added:
            return []

        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            tmp_path = f"{self.path}.tmp"
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(known + added, f)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.warning("Failed to update known users cache", path=self.path, error=str(e))
            return []

        for did in added:
            logger.debug("Added known marketplace user", did=mask_did(did))
        return added
