"""
Durable per-account storage for payment history.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .models import PaymentHistoryEntry

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when stored history cannot be read or written."""


def serialize_entries(entries: Sequence[PaymentHistoryEntry]) -> List[Dict[str, Any]]:
    return [entry.to_dict() for entry in entries]


def deserialize_entries(payload: Any) -> List[PaymentHistoryEntry]:
    """Parse one account's stored list; any malformed record invalidates the list."""

    if payload is None:
        return []
    if not isinstance(payload, list):
        raise StorageError(f"Expected a list of entries, got {type(payload).__name__}")
    try:
        return [PaymentHistoryEntry.from_dict(item) for item in payload]
    except (KeyError, TypeError, ValueError) as exc:
        raise StorageError(f"Malformed history entry: {exc}") from exc


class HistoryStorage(ABC):
    """JSON-compatible blob per account address."""

    @abstractmethod
    def read(self, account: str) -> Optional[Any]:
        pass

    @abstractmethod
    def write(self, account: str, payload: Any) -> None:
        pass

    @abstractmethod
    def delete(self, account: str) -> None:
        pass


class InMemoryStorage(HistoryStorage):
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = {key.lower(): value for key, value in (initial or {}).items()}

    def read(self, account: str) -> Optional[Any]:
        return self._data.get(account.lower())

    def write(self, account: str, payload: Any) -> None:
        # Round-trip through JSON so callers never share mutable state with storage
        self._data[account.lower()] = json.loads(json.dumps(payload))

    def delete(self, account: str) -> None:
        self._data.pop(account.lower(), None)


class JsonFileStorage(HistoryStorage):
    """All accounts in one JSON object on disk, replaced atomically on write."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def _load_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, ValueError) as exc:
            raise StorageError(f"Unable to read {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"Unexpected history file layout in {self.path}")
        return data

    def _dump_all(self, data: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".history-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise StorageError(f"Unable to write {self.path}: {exc}") from exc

    def read(self, account: str) -> Optional[Any]:
        return self._load_all().get(account.lower())

    def write(self, account: str, payload: Any) -> None:
        try:
            data = self._load_all()
        except StorageError as exc:
            logger.warning("Discarding unreadable history file: %s", exc)
            data = {}
        data[account.lower()] = payload
        self._dump_all(data)

    def delete(self, account: str) -> None:
        try:
            data = self._load_all()
        except StorageError as exc:
            logger.warning("Discarding unreadable history file: %s", exc)
            data = {}
        data.pop(account.lower(), None)
        self._dump_all(data)
