from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, Optional, Set

from settings import get_settings


def blob_name_for(resource: str, uploaded_at: Optional[datetime] = None) -> str:
    """Name a blob after its source file and the upload time, e.g. ``image1-20240101T120000.jpg``."""

    moment = uploaded_at or datetime.now(timezone.utc)
    source = Path(resource)
    return f"{source.stem}-{moment:%Y%m%dT%H%M%S}{source.suffix}"


class MockBlobContainer:

    def __init__(self, name: str, root_path: Optional[Path] = None) -> None:
        self.name = name
        self._blobs: Dict[str, bytes] = {}
        self._known_names: Set[str] = set()
        self.root_path = root_path
        self._lock = Lock()
        if root_path:
            root_path.mkdir(parents=True, exist_ok=True)
            self._load_existing_names()

    def put_blob(self, blob_name: str, data: bytes) -> str:
        with self._lock:
            self._blobs[blob_name] = data
            self._known_names.add(blob_name)
            if self.root_path:
                path = self.root_path / blob_name
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(data)
        return f"{self.name}/{blob_name}"

    def get_blob(self, blob_name: str) -> bytes:
        with self._lock:
            data = self._blobs.get(blob_name)
            if data is not None:
                return data

        if self.root_path:
            path = self.root_path / blob_name
            if path.exists():
                data = path.read_bytes()
                with self._lock:
                    self._blobs[blob_name] = data
                    self._known_names.add(blob_name)
                return data

        raise KeyError(f"Blob {blob_name!r} not found in container {self.name!r}.")

    def list_blobs(self) -> Iterable[str]:
        with self._lock:
            names = set(self._known_names)
            names.update(self._blobs.keys())
        return sorted(names)

    def _load_existing_names(self) -> None:
        assert self.root_path is not None
        for path in self.root_path.rglob("*"):
            if path.is_file():
                self._known_names.add(path.relative_to(self.root_path).as_posix())


@lru_cache
def build_default_container(
    name: Optional[str] = None,
    root_path: Optional[str] = None,
) -> MockBlobContainer:
    settings = get_settings()
    container_name = settings.container_name if name is None else name
    container_root = settings.container_root_path if root_path is None else root_path
    path = Path(container_root) if container_root else None
    return MockBlobContainer(name=container_name, root_path=path)
