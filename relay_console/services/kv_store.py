"""
Key-Value Store — origin-scoped persistent string storage.
==========================================================

The catalog persists through ``commit()`` only, so every multi-key change
lands as one write. ``JsonFileKeyValueStore`` keeps all keys in a single
JSON file written atomically (tmp + fsync + rename) with chmod 600.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional, Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def put(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def commit(self, puts: Mapping[str, str], deletes: Iterable[str] = ()) -> None: ...


class MemoryKeyValueStore:
    """In-process store. Nothing survives the process."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self.commit({key: value})

    def delete(self, key: str) -> None:
        self.commit({}, [key])

    def commit(self, puts: Mapping[str, str], deletes: Iterable[str] = ()) -> None:
        data = dict(self._data)
        data.update(puts)
        for key in deletes:
            data.pop(key, None)
        self._data = data


class JsonFileKeyValueStore:
    """All keys in one JSON object file; each commit is a whole-file replace."""

    def __init__(self, path: str):
        self._path = Path(path)
        self._data: Dict[str, str] = {}
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        if not self._path.exists():
            logger.info("No store file at %s, starting empty", self._path)
            return
        try:
            raw = json.loads(self._path.read_text())
        except (OSError, ValueError) as e:
            logger.error("Failed to load %s: %s, starting empty", self._path, e)
            return
        if not isinstance(raw, dict):
            logger.warning("Store file %s is not a JSON object, starting empty", self._path)
            return
        self._data = {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self.commit({key: value})

    def delete(self, key: str) -> None:
        self.commit({}, [key])

    def commit(self, puts: Mapping[str, str], deletes: Iterable[str] = ()) -> None:
        data = dict(self._data)
        data.update(puts)
        for key in deletes:
            data.pop(key, None)
        self._write(data)
        self._data = data

    def _write(self, data: Dict[str, str]) -> None:
        """Atomic write: tmp → fsync → rename. chmod 600."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self._path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, str(self._path))
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
