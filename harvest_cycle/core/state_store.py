"""Durable JSON document store for cycle and tax state."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict

from .errors import LedgerWriteError


class JsonStateStore:
    """One JSON document on disk, replaced atomically on every save.

    There is no cross-process locking: at most one pipeline run may
    read-modify-write a given store at a time.
    """

    def __init__(self, path: str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self, default: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        """Read the document, or ``default()`` if it does not exist yet.

        Raises:
            LedgerWriteError: If the file exists but cannot be read or parsed.
        """
        if not self._path.exists():
            return default()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise LedgerWriteError(f"Cannot read state file {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise LedgerWriteError(f"State file {self._path} does not hold a JSON object")
        return data

    def save(self, doc: Dict[str, Any]) -> None:
        """Write the document via temp file + rename.

        Raises:
            LedgerWriteError: On any filesystem failure.
        """
        tmp_name = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=str(self._path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(doc, fh, indent=2)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path)
        except (OSError, TypeError, ValueError) as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise LedgerWriteError(f"Cannot write state file {self._path}: {exc}") from exc
