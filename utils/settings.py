# utils/settings.py
import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class SettingsStore:
    """Durable string-keyed settings kept in a small JSON file.

    Loaded once at construction; every ``set`` rewrites the whole file
    through a temporary file so a crash never leaves half a document behind.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._values = self._load()

    def _load(self):
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read settings from {self.path}, starting empty: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Settings file {self.path} does not hold an object, starting empty")
            return {}
        return data

    def get(self, key, default=None):
        return self._values.get(key, default)

    def set(self, key, value):
        self._values[key] = value
        self._save()

    def _save(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + '.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(self._values, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)
