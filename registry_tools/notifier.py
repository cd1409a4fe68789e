"""Best-effort webhook notification sent after a successful sheet write.

The webhook (an n8n workflow in practice) only receives the identity of the
sheet that changed.  A notification is a single POST with a bounded timeout;
it is never retried and never raises, so a slow or broken receiver cannot
fail the write that preceded it.
"""

from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from registry_tools.settings import DEFAULT_WEBHOOK_TIMEOUT_SECONDS, WebhookSettings
from registry_tools.sheets_client import Target

logger = logging.getLogger(__name__)

SKIPPED = "skipped"
OK = "ok"
FAILED = "failed"
BODY_EXCERPT_LIMIT = 300
USER_AGENT = "registry-tools-proxy"


@dataclass(frozen=True)
class NotificationResult:
    status: str
    reason: str = ""
    http_status: Optional[int] = None
    body: str = ""

    @classmethod
    def skipped(cls, reason: str) -> "NotificationResult":
        return cls(SKIPPED, reason=reason)

    @classmethod
    def succeeded(cls, http_status: int, body: str) -> "NotificationResult":
        return cls(OK, http_status=http_status, body=body)

    @classmethod
    def failed(cls, reason: str, *, http_status: Optional[int] = None, body: str = "") -> "NotificationResult":
        return cls(FAILED, reason=reason, http_status=http_status, body=body)

    @property
    def ok(self) -> bool:
        return self.status == OK

    def to_json(self) -> Dict[str, Any]:
        if self.status == SKIPPED:
            return {"skipped": True, "reason": self.reason}
        payload: Dict[str, Any] = {"ok": self.ok}
        if self.http_status is not None:
            payload["status"] = self.http_status
            payload["body"] = self.body
        if self.status == FAILED and self.reason:
            payload["error"] = self.reason
        return payload


def _excerpt(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")[:BODY_EXCERPT_LIMIT]


class WebhookNotifier:
    """Send ``{spreadsheet_id, sheet_name}`` to the webhook configured for an environment."""

    def __init__(
        self,
        webhooks: Mapping[str, WebhookSettings],
        *,
        timeout: float = DEFAULT_WEBHOOK_TIMEOUT_SECONDS,
        opener: Callable[..., Any] = urllib.request.urlopen,
    ) -> None:
        self._webhooks = dict(webhooks)
        self._timeout = timeout
        self._opener = opener

    def notify(self, env: str, target: Target) -> NotificationResult:
        config = self._webhooks.get(env)
        if config is None or not config.url:
            logger.info("Webhook for env=%s not configured; skipping", env)
            return NotificationResult.skipped("no_url")

        headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}
        if config.header_name and config.token:
            headers[config.header_name] = config.token
        body = json.dumps({"spreadsheet_id": target.spreadsheet_id, "sheet_name": target.sheet_name}).encode("utf-8")

        try:
            request = urllib.request.Request(config.url, data=body, headers=headers, method="POST")
            with self._opener(request, timeout=self._timeout) as response:  # nosec: B310 - configured webhook URL
                status = int(getattr(response, "status", 200))
                text = _excerpt(response.read())
        except urllib.error.HTTPError as exc:
            text = _excerpt(exc.read() or b"")
            logger.warning("Webhook env=%s answered HTTP %s for %s", env, exc.code, target)
            return NotificationResult.failed(f"HTTP {exc.code}", http_status=exc.code, body=text)
        except urllib.error.URLError as exc:
            logger.warning("Webhook env=%s unreachable for %s: %s", env, target, exc.reason)
            return NotificationResult.failed(f"Webhook unreachable: {exc.reason}")
        except TimeoutError:
            logger.warning("Webhook env=%s timed out after %.1fs for %s", env, self._timeout, target)
            return NotificationResult.failed(f"Webhook timed out after {self._timeout:g}s")
        except (OSError, ValueError, http.client.HTTPException) as exc:
            logger.warning("Webhook env=%s failed for %s: %s", env, target, exc)
            return NotificationResult.failed(f"Webhook call failed: {exc}")

        logger.info("Webhook env=%s -> HTTP %s for %s", env, status, target)
        if 200 <= status < 300:
            return NotificationResult.succeeded(status, text)
        return NotificationResult.failed(f"HTTP {status}", http_status=status, body=text)


__all__ = [
    "FAILED",
    "NotificationResult",
    "OK",
    "SKIPPED",
    "WebhookNotifier",
]
