"""
Local settings storage for Carb Estimator.

Holds a single value, the OpenAI API key, in a JSON file on the user's machine.
The key never leaves the device except as the Authorization header of the
inference request. There is no server-side custody of the secret.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from carb_estimator.config import DEFAULT_SETTINGS_PATH

logger = logging.getLogger(__name__)

API_KEY_SETTING = "openai-api-key"


class CredentialStore:
    """Key-value JSON file holding the API key."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path else DEFAULT_SETTINGS_PATH

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read settings from {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(data, f, indent=2)

    def load(self) -> Optional[str]:
        """Return the stored API key, or None when nothing usable is stored."""
        value = self._read().get(API_KEY_SETTING)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    def save(self, api_key: str) -> None:
        """Persist the API key. A blank key clears the setting."""
        api_key = (api_key or "").strip()
        if not api_key:
            self.clear()
            return

        data = self._read()
        data[API_KEY_SETTING] = api_key
        self._write(data)
        logger.info(f"API key saved to {self.path}")

    def clear(self) -> None:
        data = self._read()
        if data.pop(API_KEY_SETTING, None) is not None:
            self._write(data)
            logger.info(f"API key removed from {self.path}")
