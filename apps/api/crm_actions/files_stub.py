from __future__ import annotations

import tempfile
import threading
import time
import uuid
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class StoredFile:
    file_id: uuid.UUID
    filename: str
    content_type: str
    workspace_id: str | None
    path: Path
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


_FILE_INDEX: dict[uuid.UUID, StoredFile] = {}
_LOCK = threading.Lock()


def _base_dir() -> Path:
    base = Path(tempfile.gettempdir()) / "crm_actions_exports"
    base.mkdir(parents=True, exist_ok=True)
    return base


def purge_expired() -> int:
    """Drop expired entries and their files; returns how many were removed."""
    now = time.time()
    with _LOCK:
        expired = [stored for stored in _FILE_INDEX.values() if stored.is_expired(now)]
        for stored in expired:
            del _FILE_INDEX[stored.file_id]
    for stored in expired:
        stored.path.unlink(missing_ok=True)
    return len(expired)


def store_bytes(
    content: bytes,
    filename: str,
    content_type: str,
    workspace_id: str | None = None,
    ttl_seconds: float | None = None,
) -> uuid.UUID:
    purge_expired()
    file_id = uuid.uuid4()
    safe_name = Path(filename or "export.bin").name
    extension = Path(safe_name).suffix or ".bin"
    file_path = _base_dir() / f"{file_id}{extension}"
    file_path.write_bytes(content)
    with _LOCK:
        _FILE_INDEX[file_id] = StoredFile(
            file_id=file_id,
            filename=safe_name,
            content_type=content_type,
            workspace_id=workspace_id,
            path=file_path,
            expires_at=None if ttl_seconds is None else time.time() + ttl_seconds,
        )
    return file_id


def get_file(file_id: uuid.UUID) -> StoredFile:
    with _LOCK:
        stored = _FILE_INDEX.get(file_id)
    if stored is not None and stored.is_expired(time.time()):
        purge_expired()
        stored = None
    if stored is None or not stored.path.exists():
        raise FileNotFoundError(f"file_id not found: {file_id}")
    return stored
