"""
State Store - whole-file JSON snapshots with atomic replacement.

Each snapshot (trade ledger, arena state, allocation state) is read in full
at startup and rewritten in full after every mutation. Writes go to a temp
file in the same directory and are swapped in with os.replace, so readers
never observe a half-written document.
"""

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class StateStoreError(Exception):
    """Raised when a snapshot cannot be written."""


class StateStore:
    """Load/save one JSON document at a fixed path."""

    def __init__(self, path: str):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[Any]:
        """
        Read the snapshot.

        Returns:
            The decoded document, or None if the file is absent or corrupt.
            A corrupt file is moved aside so the next save cannot hide it.
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except ValueError as e:
            logger.error(f"Corrupt snapshot {self.path}: {e}")
            self._quarantine()
            return None
        except OSError as e:
            logger.error(f"Failed to read snapshot {self.path}: {e}")
            return None

    def save(self, payload: Any) -> None:
        """Write the snapshot atomically. Raises StateStoreError on failure."""
        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", suffix=".json", dir=self.path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
        except (OSError, TypeError, ValueError) as e:
            raise StateStoreError(f"Failed to write {self.path}: {e}") from e
        finally:
            if tmp_path is not None:
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass

    def _quarantine(self) -> None:
        target = self.path.with_name(f"{self.path.name}.corrupt-{int(time.time())}")
        try:
            os.replace(self.path, target)
            logger.warning(f"Moved corrupt snapshot to {target}")
        except OSError as e:
            logger.error(f"Could not move corrupt snapshot {self.path}: {e}")
