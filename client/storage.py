import json
import logging
import os
import threading

logger = logging.getLogger(__name__)


class VolatileStorage:
    """Process-scoped key/value store; contents vanish with the process."""

    def __init__(self):
        self._items = {}
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            return self._items.get(key)

    def set(self, key, value):
        with self._lock:
            self._items[key] = value

    def remove(self, key):
        with self._lock:
            self._items.pop(key, None)


class DurableStorage:
    """Key/value store persisted as a JSON object in a single file."""

    def __init__(self, path):
        self.path = path
        self._lock = threading.Lock()

    def _load(self):
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable session storage %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp_path, self.path)

    def get(self, key):
        with self._lock:
            return self._load().get(key)

    def set(self, key, value):
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)

    def remove(self, key):
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._save(data)
