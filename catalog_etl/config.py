"""Runtime configuration for the collector.

Settings come from a JSON file (``config.json`` by default) and may be
overridden by ``CATALOG_*`` environment variables, which are also read from a
``.env`` file in the working directory.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

LOGGER = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"

SITE_URL = "https://asmr.one"
ASMR100_API_URL = "https://api.asmr-100.com"
ASMR200_API_URL = "https://api.asmr-200.com"

_ENV_OVERRIDES = {
    "CATALOG_ACCOUNT": "account",
    "CATALOG_PASSWORD": "password",
    "CATALOG_MAX_WORKER": "max_worker",
    "CATALOG_MAX_FAILED_RETRY": "max_failed_retry",
    "CATALOG_BASE_URL": "base_url",
    "CATALOG_PAGE_LIMIT": "page_limit",
}


class Settings(BaseModel):
    """Collector settings. Unknown keys from older config files are ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    account: str = "guest"
    password: str = "guest"
    max_workers: int = Field(default=6, ge=1, alias="max_worker")
    max_failed_retry: int = Field(default=3, ge=0)
    channel_capacity: int = Field(default=5, ge=1)
    request_timeout: float = Field(default=20.0, gt=0)
    retry_wait: float = Field(default=1.0, ge=0)
    base_url: Optional[str] = None
    page_limit: Optional[int] = Field(default=None, ge=1)
    id_prefix: str = "RJ"

    def safe_dict(self) -> Dict[str, Any]:
        """Return settings suitable for logging, with the password masked."""
        data = self.model_dump(by_alias=True)
        data["password"] = "*" * len(self.password)
        return data


def load_settings(path: str | Path = CONFIG_FILE_NAME) -> Settings:
    """Read settings from ``path`` (if present) and apply env overrides."""
    load_dotenv(Path.cwd() / ".env")
    data: Dict[str, Any] = {}
    config_path = Path(path)
    if config_path.exists():
        data = json.loads(config_path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{config_path} must contain a JSON object")
    else:
        LOGGER.info("Config file %s not found, using defaults", config_path)

    for env_name, key in _ENV_OVERRIDES.items():
        if value := os.getenv(env_name):
            data[key] = value
    return Settings.model_validate(data)


def save_settings(settings: Settings, path: str | Path = CONFIG_FILE_NAME) -> Path:
    config_path = Path(path)
    config_path.write_text(
        settings.model_dump_json(by_alias=True, exclude_none=True, indent=2),
        encoding="utf-8",
    )
    return config_path


def resolve_base_url(settings: Settings, client: Optional[httpx.Client] = None) -> str:
    """Pick the API mirror once at start-up.

    An explicit ``base_url`` wins. Otherwise the public site is probed: a
    reachable site means the asmr-100 mirror is used, anything else falls back
    to asmr-200.
    """
    if settings.base_url:
        return settings.base_url.rstrip("/")

    owns_client = client is None
    client = client or httpx.Client(timeout=settings.request_timeout, follow_redirects=True)
    try:
        response = client.get(SITE_URL)
        reachable = response.status_code == 200
    except httpx.HTTPError as exc:
        LOGGER.warning("Probe of %s failed: %s", SITE_URL, exc)
        reachable = False
    finally:
        if owns_client:
            client.close()

    base_url = ASMR100_API_URL if reachable else ASMR200_API_URL
    LOGGER.info("Using API mirror %s", base_url)
    return base_url
