from __future__ import annotations

import http.client
import socket
import sys
import threading
import time
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from registry_tools import intake
from registry_tools.context import AppContext
from registry_tools.errors import ConfigurationError, NotFoundError
from registry_tools.notifier import WebhookNotifier
from registry_tools.records import MODELS_HEADER
from registry_tools.settings import ProxySettings, WebhookSettings
from sheets_fakes import REGISTRY_ID, FakeService, registry_books


class _TimeoutOpener:
    def __init__(self) -> None:
        self.calls = 0

    def __call__(self, request, timeout=None):
        self.calls += 1
        raise socket.timeout("timed out")


def _context(books=None, opener=None):
    service = FakeService(books or registry_books())
    webhooks = {"dev": WebhookSettings(url="https://hooks.example.com/dev"), "prod": WebhookSettings()}
    notifier = WebhookNotifier(webhooks, opener=opener or _TimeoutOpener())
    settings = ProxySettings(registry_spreadsheet_id=REGISTRY_ID, webhooks=webhooks)
    return service, AppContext(settings, service=service, notifier=notifier)


def test_add_model_creates_models_sheet_and_upserts_by_key() -> None:
    service, context = _context()
    payload = {"Manufacturer": "Acme", "Model": "X200", "Year": "1998", "Category": "Tractors"}

    first = intake.add_model(context, "prod", payload)
    second = intake.add_model(context, "prod", dict(payload, Status="Done"))

    rows = service.rows("models-book", "Models")
    assert rows[0] == list(MODELS_HEADER)
    assert len(rows) == 2
    assert rows[1][4] == "acme_x200_1998_tractors"
    assert rows[1][5] == "Done"
    assert first.to_json()["upsert"] == {"upsert": "insert"}
    assert second.to_json()["upsert"] == {"upsert": "update", "row": 2}
    assert second.to_json()["n8n"] == {"skipped": True, "reason": "no_url"}
    assert second.to_json()["target"] == {"spreadsheetId": "models-book", "sheetName": "Models"}


def test_add_model_succeeds_when_webhook_times_out() -> None:
    opener = _TimeoutOpener()
    _service, context = _context(opener=opener)

    result = intake.add_model(context, "dev", {"Manufacturer": "Acme", "Model": "M1", "Category": "Mowers"})

    payload = result.to_json()
    assert payload["ok"] is True
    assert payload["env"] == "dev"
    assert payload["n8n"]["ok"] is False
    assert "timed out" in payload["n8n"]["error"]
    assert opener.calls == 1


def test_add_model_rejects_unknown_category() -> None:
    _service, context = _context()

    with pytest.raises(NotFoundError, match="Category Boats not found"):
        intake.add_model(context, "dev", {"Manufacturer": "Acme", "Model": "B1", "Category": "Boats"})


def test_add_model_requires_models_target() -> None:
    _service, context = _context()

    with pytest.raises(ConfigurationError, match="target_spreadsheet_id_models"):
        intake.add_model(context, "dev", {"Manufacturer": "Acme", "Model": "D1", "Category": "Drones"})


def test_add_model_requires_registry_id() -> None:
    service = FakeService(registry_books())
    context = AppContext(ProxySettings(), service=service)

    with pytest.raises(ConfigurationError, match="REGISTRY_SPREADSHEET_ID"):
        intake.add_model(context, "dev", {"Manufacturer": "Acme", "Model": "X", "Category": "Tractors"})


def test_bulk_add_groups_by_target_and_reports_unknown_categories() -> None:
    service, context = _context()
    items = [
        {"Manufacturer": "Acme", "Model": "X200", "Category": "Tractors"},
        {"Manufacturer": "Acme", "Model": "M1", "Category": "Mowers"},
        {"Manufacturer": "Acme", "Model": "B1", "Category": "Boats"},
        {"Manufacturer": "Acme", "Model": "X200", "Category": "Tractors", "Status": "Done"},
        "not a record",
    ]

    result = intake.bulk_add_models(context, "prod", items)

    payload = result.to_json()
    assert payload["missingCategories"] == ["Boats"]
    assert payload["skipped"] == 2
    assert payload["total"] == 2
    assert len(payload["groups"]) == 1
    group = payload["groups"][0]
    assert group["target"] == {"spreadsheetId": "models-book", "sheetName": "Models"}
    assert group["upsert"] == {"inserted": 2, "updated": 0, "total": 2}
    assert "error" not in group
    rows = service.rows("models-book", "Models")
    assert [row[4] for row in rows[1:]] == ["acme_x200_tractors", "acme_m1_mowers"]
    assert rows[1][5] == "Done"
    assert service.count("append", "models-book") == 1


def test_bulk_add_records_group_errors_and_continues() -> None:
    books = registry_books()
    books[REGISTRY_ID]["Registry"].append(["boats", "Boats", "", "boats-models", "", "", ""])
    books["boats-models"] = {"Models": []}
    service, context = _context(books)
    service.denied.add("models-book")

    result = intake.bulk_add_models(
        context,
        "dev",
        [
            {"Manufacturer": "Acme", "Model": "X200", "Category": "Tractors"},
            {"Manufacturer": "Acme", "Model": "B1", "Category": "Boats"},
        ],
    )

    groups = {group.target.spreadsheet_id: group for group in result.groups}
    assert groups["models-book"].error
    assert groups["models-book"].notification.to_json() == {"skipped": True, "reason": "write_failed"}
    assert groups["boats-models"].upsert.inserted == 1
    assert groups["boats-models"].error == ""
    assert result.total == 1


def test_bulk_add_with_no_items_reads_nothing() -> None:
    service, context = _context()

    assert intake.bulk_add_models(context, "dev", []).to_json()["total"] == 0
    assert service.calls == []


class _GarbageOpener:
    def __call__(self, request, timeout=None):
        raise http.client.BadStatusLine("NOT-HTTP garbage")


def test_malformed_webhook_answer_does_not_fail_the_write() -> None:
    service, context = _context(opener=_GarbageOpener())

    result = intake.add_model(context, "dev", {"Manufacturer": "Acme", "Model": "X200", "Category": "Tractors"})

    payload = result.to_json()
    assert payload["ok"] is True
    assert payload["n8n"]["ok"] is False
    assert len(service.rows("models-book", "Models")) == 2


def test_malformed_webhook_answer_does_not_stop_bulk_groups() -> None:
    books = registry_books()
    books[REGISTRY_ID]["Registry"].append(["boats", "Boats", "", "boats-models", "", "", ""])
    books["boats-models"] = {"Models": []}
    _service, context = _context(books, opener=_GarbageOpener())

    result = intake.bulk_add_models(
        context,
        "dev",
        [
            {"Manufacturer": "Acme", "Model": "X200", "Category": "Tractors"},
            {"Manufacturer": "Acme", "Model": "B1", "Category": "Boats"},
        ],
    )

    assert result.total == 2
    assert [group.notification.ok for group in result.groups] == [False, False]
    assert all(group.error == "" for group in result.groups)


class _RacingService(FakeService):
    """Holds data-row reads until both writers have entered ``add_model``."""

    def __init__(self, books, started: threading.Event) -> None:
        super().__init__(books)
        self._started = started

    def _handle_get(self, spreadsheet_id, range_spec):
        if spreadsheet_id == "models-book" and "!A2:" in range_spec:
            self._started.wait(timeout=5)
            time.sleep(0.05)
        return super()._handle_get(spreadsheet_id, range_spec)


def test_concurrent_add_model_writes_one_row_per_key() -> None:
    started = threading.Event()
    service = _RacingService(registry_books(), started)
    settings = ProxySettings(registry_spreadsheet_id=REGISTRY_ID)
    context = AppContext(settings, service=service, notifier=WebhookNotifier({}))
    payload = {"Manufacturer": "Acme", "Model": "X200", "Year": "1998", "Category": "Tractors"}

    arrivals = []
    arrivals_lock = threading.Lock()
    results = []
    errors = []

    def _worker() -> None:
        with arrivals_lock:
            arrivals.append(1)
            if len(arrivals) == 2:
                started.set()
        try:
            results.append(intake.add_model(context, "dev", payload))
        except Exception as exc:  # surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=_worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert errors == []
    keys = [row[4] for row in service.rows("models-book", "Models")[1:]]
    assert keys == ["acme_x200_1998_tractors"]
    assert sorted(result.upsert.action for result in results) == ["insert", "update"]
