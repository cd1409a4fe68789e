"""Application context shared by the HTTP surface and the CLI."""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

from registry_tools import registry
from registry_tools.errors import ConfigurationError
from registry_tools.google_credentials import load_service_account_data
from registry_tools.notifier import WebhookNotifier
from registry_tools.settings import ProxySettings
from registry_tools.sheets_client import SheetsClient, Target, build_service

logger = logging.getLogger(__name__)


class AppContext:
    """Own the settings, the Sheets client and the per-target write locks.

    The Sheets client is built on first use and reused for the lifetime of
    the context.  Passing ``service`` (any object shaped like the
    googleapiclient Sheets service) skips credential loading entirely.
    """

    def __init__(
        self,
        settings: ProxySettings,
        *,
        service=None,
        notifier: Optional[WebhookNotifier] = None,
    ) -> None:
        self.settings = settings
        self._client: Optional[SheetsClient] = SheetsClient(service) if service is not None else None
        self._client_lock = threading.Lock()
        self._target_locks: Dict[Target, threading.Lock] = {}
        self._target_locks_guard = threading.Lock()
        self.notifier = notifier or WebhookNotifier(
            settings.webhooks,
            timeout=settings.webhook_timeout_seconds,
        )

    @property
    def client(self) -> SheetsClient:
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    self._client = self._build_client()
        return self._client

    def _build_client(self) -> SheetsClient:
        credentials = load_service_account_data(
            blob=self.settings.service_account_blob,
            path=self.settings.credentials_path(),
        )
        email = str(credentials.get("client_email", ""))
        service = build_service(credentials)
        logger.info("Sheets client ready for service account %s", email or "<unknown>")
        return SheetsClient(service, service_account_email=email)

    def read_registry(self) -> List[registry.RegistryRow]:
        spreadsheet_id = self.settings.registry_spreadsheet_id
        if not spreadsheet_id:
            raise ConfigurationError("REGISTRY_SPREADSHEET_ID is not set")
        return registry.read_registry(self.client, spreadsheet_id, self.settings.registry_sheet)

    def lock_for(self, target: Target) -> threading.Lock:
        """Return the lock serialising read-then-write sequences on ``target``."""

        with self._target_locks_guard:
            lock = self._target_locks.get(target)
            if lock is None:
                lock = threading.Lock()
                self._target_locks[target] = lock
            return lock


__all__ = ["AppContext"]
