from __future__ import annotations
import copy
import json
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Mapping, Optional

from settings import get_settings

VERSION_KEY = "$version"


class MockDeviceTwin:
    """Hub-side desired and reported property documents for one device."""

    def __init__(self, device_id: str, persistence_path: Optional[Path] = None) -> None:
        self.device_id = device_id
        self._desired: Dict[str, Any] = {VERSION_KEY: 0}
        self._reported: Dict[str, Any] = {VERSION_KEY: 0}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def update_desired(self, patch: Mapping[str, Any]) -> Dict[str, Any]:
        """Merge ``patch`` into the desired document and return the versioned patch.

        A ``None`` value removes the property.
        """
        with self._lock:
            version = self._merge(self._desired, patch)
            self._persist()
            delta = {key: copy.deepcopy(value) for key, value in patch.items() if key != VERSION_KEY}
            delta[VERSION_KEY] = version
            return delta

    def update_reported(self, patch: Mapping[str, Any]) -> int:
        with self._lock:
            version = self._merge(self._reported, patch)
            self._persist()
            return version

    def desired(self) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._desired)

    def reported(self) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._reported)

    @staticmethod
    def _merge(document: Dict[str, Any], patch: Mapping[str, Any]) -> int:
        for key, value in patch.items():
            if key == VERSION_KEY:
                continue
            if value is None:
                document.pop(key, None)
            else:
                document[key] = copy.deepcopy(value)
        document[VERSION_KEY] = int(document.get(VERSION_KEY, 0)) + 1
        return document[VERSION_KEY]

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {"desired": self._desired, "reported": self._reported}
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        self._desired.update(data.get("desired") or {})
        self._reported.update(data.get("reported") or {})


@lru_cache
def build_default_twin(
    device_id: Optional[str] = None,
    path: Optional[str] = None,
) -> MockDeviceTwin:
    settings = get_settings()
    twin_device = settings.device_id if device_id is None else device_id
    twin_path = settings.twin_persistence_path if path is None else path
    persistence = Path(twin_path) if twin_path else None
    return MockDeviceTwin(device_id=twin_device, persistence_path=persistence)
