from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"
DEFAULT_SETTINGS_PATH = Path.home() / ".carb_estimator" / "settings.json"


def _parse_timeout(value: str) -> Optional[float]:
    value = (value or "").strip()
    if not value:
        return None
    timeout = float(value)
    if timeout <= 0:
        raise ValueError("CARB_ESTIMATOR_REQUEST_TIMEOUT must be a positive number of seconds")
    return timeout


@dataclass(frozen=True)
class Settings:
    openai_base_url: str
    openai_model: str
    # Only used to seed a session when nothing is stored locally
    openai_api_key: Optional[str]
    settings_path: Path
    # None leaves the request without a timeout (transport default)
    request_timeout: Optional[float]
    log_level: str

    @staticmethod
    def from_env() -> "Settings":
        base_url = os.environ.get("OPENAI_BASE_URL", "").strip() or DEFAULT_BASE_URL
        model = os.environ.get("OPENAI_MODEL", "").strip() or DEFAULT_MODEL
        api_key = os.environ.get("OPENAI_API_KEY", "").strip() or None

        settings_path_raw = os.environ.get("CARB_ESTIMATOR_SETTINGS_PATH", "").strip()
        settings_path = Path(settings_path_raw).expanduser() if settings_path_raw else DEFAULT_SETTINGS_PATH

        request_timeout = _parse_timeout(os.environ.get("CARB_ESTIMATOR_REQUEST_TIMEOUT", ""))

        log_level = os.environ.get("CARB_ESTIMATOR_LOG_LEVEL", "INFO").strip().upper() or "INFO"

        return Settings(
            openai_base_url=base_url.rstrip("/"),
            openai_model=model,
            openai_api_key=api_key,
            settings_path=settings_path,
            request_timeout=request_timeout,
            log_level=log_level,
        )


def get_settings() -> Settings:
    return Settings.from_env()
