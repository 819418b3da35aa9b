import json
import logging
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)


class MemoryStore:
    """Session scoped key/value store, lost with the process."""

    def __init__(self, data: Dict[str, Any] | None = None):
        self._data: Dict[str, Any] = dict(data or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value


class JsonFileStore(MemoryStore):
    """Durable key/value store backed by a JSON file, rewritten on every set."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        data = {}
        if self.path.exists():
            try:
                data = json.loads(self.path.read_text())
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"store {self.path} couldn't be loaded: {e!r}")
        super().__init__(data)

    def set(self, key: str, value: Any) -> None:
        super().set(key, value)
        self.path.write_text(json.dumps(self._data, indent=4))
