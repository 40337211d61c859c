"""Flat key-value object stores with prefix listing."""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from .errors import StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredObject:
    key: str
    uploaded_at: Optional[datetime]
    url: str
    size: int = 0


class ObjectStore(Protocol):
    def put(self, key: str, data: bytes, content_type: str) -> StoredObject:
        ...

    def list(self, prefix: str, limit: int = 2000) -> List[StoredObject]:
        ...

    def get(self, key: str) -> bytes:
        ...

    def delete(self, key: str) -> bool:
        ...


def _check_key(key: str) -> str:
    if not key or key.startswith("/") or "\\" in key:
        raise StorageError(f"invalid object key: {key!r}")
    if any(part in ("", ".", "..") for part in key.split("/")):
        raise StorageError(f"invalid object key: {key!r}")
    return key


class LocalObjectStore:
    """Objects stored as files below ``root``; keys map to relative paths."""

    def __init__(self, root: str) -> None:
        self.root = Path(root).resolve()

    def _path(self, key: str) -> Path:
        return self.root.joinpath(*_check_key(key).split("/"))

    def put(self, key: str, data: bytes, content_type: str) -> StoredObject:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as exc:
            raise StorageError(f"failed to write {key}: {exc}") from exc
        logger.debug("Stored %s (%d bytes, %s)", key, len(data), content_type)
        return self._describe(key, path)

    def _describe(self, key: str, path: Path) -> StoredObject:
        stat = path.stat()
        return StoredObject(
            key=key,
            uploaded_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            url=path.as_uri(),
            size=stat.st_size,
        )

    def list(self, prefix: str, limit: int = 2000) -> List[StoredObject]:
        head, _, _ = prefix.rpartition("/")
        base = self.root.joinpath(*head.split("/")) if head else self.root
        if not base.is_dir():
            return []
        keys: List[str] = []
        try:
            for dirpath, _dirnames, filenames in os.walk(base):
                for filename in filenames:
                    if filename.startswith(".tmp-"):
                        continue
                    rel = Path(dirpath, filename).relative_to(self.root)
                    key = "/".join(rel.parts)
                    if key.startswith(prefix):
                        keys.append(key)
            keys.sort()
            return [self._describe(key, self._path(key)) for key in keys[:limit]]
        except OSError as exc:
            raise StorageError(f"failed to list {prefix}: {exc}") from exc

    def get(self, key: str) -> bytes:
        try:
            return self._path(key).read_bytes()
        except OSError as exc:
            raise StorageError(f"failed to read {key}: {exc}") from exc

    def delete(self, key: str) -> bool:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"failed to delete {key}: {exc}") from exc
        return True


class MemoryObjectStore:
    """In-process store, used in tests and dry runs."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._objects: Dict[str, Tuple[bytes, str, datetime]] = {}
        self._lock = threading.Lock()

    def _url(self, key: str) -> str:
        return f"memory://{key}"

    def put(self, key: str, data: bytes, content_type: str) -> StoredObject:
        _check_key(key)
        uploaded_at = self._clock()
        with self._lock:
            self._objects[key] = (bytes(data), content_type, uploaded_at)
        return StoredObject(key=key, uploaded_at=uploaded_at, url=self._url(key), size=len(data))

    def list(self, prefix: str, limit: int = 2000) -> List[StoredObject]:
        with self._lock:
            items = sorted(
                (key, entry) for key, entry in self._objects.items() if key.startswith(prefix)
            )
        return [
            StoredObject(key=key, uploaded_at=entry[2], url=self._url(key), size=len(entry[0]))
            for key, entry in items[:limit]
        ]

    def get(self, key: str) -> bytes:
        with self._lock:
            entry = self._objects.get(key)
        if entry is None:
            raise StorageError(f"no such object: {key}")
        return entry[0]

    def content_type(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._objects.get(key)
        return entry[1] if entry else None

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._objects.pop(key, None) is not None
