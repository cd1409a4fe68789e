"""Application configuration helpers for the registry tools proxy."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from registry_tools.google_credentials import resolve_credentials_path


logger = logging.getLogger(__name__)


DEFAULT_PORT = 5500
DEFAULT_HOST = "0.0.0.0"
DEFAULT_REGISTRY_SHEET = "Registry"
DEFAULT_SERVICE_ACCOUNT_FILE = "service-account.json"
DEFAULT_WEBHOOK_HEADER_NAME = "X-Webhook-Token"
DEFAULT_WEBHOOK_TIMEOUT_SECONDS = 8.0
ENVIRONMENTS = ("dev", "prod")


@dataclass
class WebhookSettings:
    """Webhook endpoint notified after writes for one environment."""

    url: str = ""
    header_name: str = DEFAULT_WEBHOOK_HEADER_NAME
    token: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.url)


@dataclass
class ProxySettings:
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    cors_origins: List[str] = field(default_factory=list)
    api_key: str = ""
    registry_spreadsheet_id: str = ""
    registry_sheet: str = DEFAULT_REGISTRY_SHEET
    service_account_file: str = DEFAULT_SERVICE_ACCOUNT_FILE
    service_account_blob: str = ""
    webhooks: Dict[str, WebhookSettings] = field(default_factory=dict)
    webhook_timeout_seconds: float = DEFAULT_WEBHOOK_TIMEOUT_SECONDS
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def webhook_for(self, env: str) -> Optional[WebhookSettings]:
        return self.webhooks.get(env)

    def credentials_path(self, base_dir: Optional[Path] = None) -> Path:
        """Return the service account file path; relative paths use the working directory."""

        return resolve_credentials_path(self.service_account_file, base_dir=base_dir)


def _clean(environ: Mapping[str, str], name: str, default: str = "") -> str:
    value = environ.get(name)
    if value is None:
        return default
    return value.strip()


def _parse_port(raw: str) -> int:
    if not raw:
        return DEFAULT_PORT
    try:
        port = int(raw)
    except ValueError:
        logger.warning("Ignoring invalid PORT value %r; using %s", raw, DEFAULT_PORT)
        return DEFAULT_PORT
    if not 0 < port < 65536:
        logger.warning("Ignoring out of range PORT value %r; using %s", raw, DEFAULT_PORT)
        return DEFAULT_PORT
    return port


def parse_origins(raw: str) -> List[str]:
    """Split a comma separated CORS allow list, dropping blanks."""

    return [origin.strip() for origin in (raw or "").split(",") if origin.strip()]


def _load_webhook(environ: Mapping[str, str], env: str) -> WebhookSettings:
    prefix = f"N8N_{env.upper()}_WEBHOOK"
    return WebhookSettings(
        url=_clean(environ, f"{prefix}_URL"),
        header_name=_clean(environ, f"{prefix}_HEADER_NAME") or DEFAULT_WEBHOOK_HEADER_NAME,
        token=_clean(environ, f"{prefix}_TOKEN"),
    )


def load_settings(environ: Optional[Mapping[str, str]] = None) -> ProxySettings:
    """Build :class:`ProxySettings` from ``environ`` (``os.environ`` by default)."""

    env = os.environ if environ is None else environ
    settings = ProxySettings(
        port=_parse_port(_clean(env, "PORT")),
        host=_clean(env, "HOST") or DEFAULT_HOST,
        cors_origins=parse_origins(_clean(env, "CORS_ORIGIN")),
        api_key=_clean(env, "API_KEY"),
        registry_spreadsheet_id=_clean(env, "REGISTRY_SPREADSHEET_ID"),
        registry_sheet=_clean(env, "REGISTRY_SHEET") or DEFAULT_REGISTRY_SHEET,
        service_account_file=_clean(env, "SERVICE_ACCOUNT_FILE") or DEFAULT_SERVICE_ACCOUNT_FILE,
        service_account_blob=_clean(env, "GCP_SA_JSON"),
        webhooks={name: _load_webhook(env, name) for name in ENVIRONMENTS},
        log_level=(_clean(env, "LOG_LEVEL") or "INFO").upper(),
        log_file=_clean(env, "LOG_FILE") or None,
    )
    if not settings.registry_spreadsheet_id:
        logger.warning("REGISTRY_SPREADSHEET_ID is not set; registry operations will fail.")
    return settings


__all__ = [
    "DEFAULT_PORT",
    "DEFAULT_REGISTRY_SHEET",
    "DEFAULT_WEBHOOK_HEADER_NAME",
    "DEFAULT_WEBHOOK_TIMEOUT_SECONDS",
    "ENVIRONMENTS",
    "ProxySettings",
    "WebhookSettings",
    "load_settings",
    "parse_origins",
]
