"""Google Sheets client helpers with robust A1 range handling.

This module centralises all direct interactions with the Google Sheets API
used by the registry tools.  It provides a small, well defined surface area
that the rest of the package relies on without needing to know about
googleapiclient internals:

* Worksheet titles are always quoted according to the A1 rules and column
  references are calculated with a dedicated helper, so sheet names with
  spaces or apostrophes never produce "Unable to parse range" errors.
* Range reads, range writes, batched writes, appends and sheet creation are
  the only operations exposed.  Higher level modules (upsert, provisioning,
  registry) decide *what* to write; this layer only speaks HTTP.
* All failures surface as :class:`~registry_tools.errors.AccessError`, with a
  hint about sharing the spreadsheet with the service account when Google
  answers with "not found" or "permission denied".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, MutableSequence, Optional, Sequence, Tuple

from google.auth import exceptions as google_auth_exceptions
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from registry_tools.errors import AccessError, CredentialsError

logger = logging.getLogger(__name__)

SCOPES: Sequence[str] = (
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.readonly",
)

_ACCESS_HINT = (
    "Check that the spreadsheet id in the Registry is correct, that the sheet exists "
    "(or can be created) and that the spreadsheet is shared with the service account {email} (Editor)."
)


@dataclass(frozen=True)
class Target:
    """Destination worksheet: a spreadsheet id plus a sheet title."""

    spreadsheet_id: str
    sheet_name: str

    def to_json(self) -> Dict[str, str]:
        return {"spreadsheetId": self.spreadsheet_id, "sheetName": self.sheet_name}

    def __str__(self) -> str:
        return f"{self.spreadsheet_id}/{self.sheet_name}"


def column_letter(index: int) -> str:
    """Return the A1 column letter for the 1-based ``index``."""

    if index < 1:
        raise ValueError("Column index must be >= 1")
    letters: MutableSequence[str] = []
    while index:
        index, remainder = divmod(index - 1, 26)
        letters.append(chr(65 + remainder))
    return "".join(reversed(letters))


def quote_title(title: str) -> str:
    """Return a worksheet title quoted according to A1 notation rules."""

    safe = (title or "").strip()
    if not safe:
        raise ValueError("Worksheet title must not be blank")
    safe = safe.replace("'", "''")
    return f"'{safe}'"


def a1_range(title: str, range_spec: str) -> str:
    """Return ``range_spec`` qualified with the quoted worksheet ``title``."""

    return f"{quote_title(title)}!{range_spec}"


def a1_header_range(title: str) -> str:
    return a1_range(title, "1:1")


def a1_row_range(title: str, row_number: int, *, columns: int) -> str:
    """Return an A1 range covering ``row_number`` across ``columns`` columns."""

    if row_number < 1:
        raise ValueError("Row number must be >= 1")
    last_column = column_letter(max(1, columns))
    return a1_range(title, f"A{row_number}:{last_column}{row_number}")


def a1_data_range(title: str, *, columns: int) -> str:
    """Return an A1 range spanning every data row below the header."""

    last_column = column_letter(max(1, columns))
    return a1_range(title, f"A2:{last_column}")


def build_service(credentials_info: Mapping[str, object]):
    """Construct a Sheets v4 service from service account ``credentials_info``."""

    try:
        credentials = service_account.Credentials.from_service_account_info(dict(credentials_info), scopes=list(SCOPES))
    except (ValueError, KeyError) as exc:
        raise CredentialsError(f"Service account credentials rejected: {exc}") from exc
    return build("sheets", "v4", credentials=credentials, cache_discovery=False)


def _http_status(exc: HttpError) -> Optional[int]:
    response = getattr(exc, "resp", None)
    status = getattr(response, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


class SheetsClient:
    """Thin wrapper around a googleapiclient Sheets service object."""

    def __init__(self, service, *, service_account_email: str = "") -> None:
        self._service = service
        self._service_account_email = service_account_email

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def read_range(self, spreadsheet_id: str, range_a1: str) -> List[List[str]]:
        """Return the cell values of ``range_a1`` as strings (rows may be ragged)."""

        request = self._service.spreadsheets().values().get(spreadsheetId=spreadsheet_id, range=range_a1)
        result = self._execute(request, spreadsheet_id, f"read {range_a1}")
        values = result.get("values", []) if isinstance(result, Mapping) else []
        return [["" if cell is None else str(cell) for cell in row] for row in values]

    def write_range(
        self,
        spreadsheet_id: str,
        range_a1: str,
        rows: Sequence[Sequence[Any]],
        *,
        value_input_option: str = "RAW",
    ) -> None:
        """Overwrite ``range_a1`` with ``rows``."""

        request = (
            self._service.spreadsheets()
            .values()
            .update(
                spreadsheetId=spreadsheet_id,
                range=range_a1,
                valueInputOption=value_input_option,
                body={"values": [list(row) for row in rows]},
            )
        )
        self._execute(request, spreadsheet_id, f"write {range_a1}")

    def batch_write(
        self,
        spreadsheet_id: str,
        data: Sequence[Tuple[str, Sequence[Sequence[Any]]]],
        *,
        value_input_option: str = "USER_ENTERED",
    ) -> None:
        """Write several ranges in a single ``values.batchUpdate`` request."""

        if not data:
            return
        body = {
            "valueInputOption": value_input_option,
            "data": [
                {"range": range_a1, "values": [list(row) for row in rows]}
                for range_a1, rows in data
            ],
        }
        request = self._service.spreadsheets().values().batchUpdate(spreadsheetId=spreadsheet_id, body=body)
        self._execute(request, spreadsheet_id, f"batch write of {len(data)} ranges")

    def append_rows(
        self,
        spreadsheet_id: str,
        range_a1: str,
        rows: Sequence[Sequence[Any]],
        *,
        value_input_option: str = "USER_ENTERED",
    ) -> None:
        """Append ``rows`` after the last row of the table anchored at ``range_a1``."""

        if not rows:
            return
        request = (
            self._service.spreadsheets()
            .values()
            .append(
                spreadsheetId=spreadsheet_id,
                range=range_a1,
                valueInputOption=value_input_option,
                insertDataOption="INSERT_ROWS",
                body={"values": [list(row) for row in rows]},
            )
        )
        self._execute(request, spreadsheet_id, f"append {len(rows)} rows to {range_a1}")

    def sheet_titles(self, spreadsheet_id: str) -> List[str]:
        """Return the titles of every worksheet in ``spreadsheet_id``."""

        request = self._service.spreadsheets().get(
            spreadsheetId=spreadsheet_id,
            includeGridData=False,
            fields="sheets.properties.title",
        )
        result = self._execute(request, spreadsheet_id, "open spreadsheet")
        sheets = result.get("sheets", []) if isinstance(result, Mapping) else []
        titles: List[str] = []
        for sheet in sheets:
            properties = sheet.get("properties") or {}
            title = properties.get("title")
            if isinstance(title, str):
                titles.append(title)
        return titles

    def add_sheet(self, spreadsheet_id: str, title: str) -> None:
        """Create a worksheet named ``title``."""

        body: Dict[str, object] = {"requests": [{"addSheet": {"properties": {"title": title}}}]}
        request = self._service.spreadsheets().batchUpdate(spreadsheetId=spreadsheet_id, body=body)
        self._execute(request, spreadsheet_id, f"create sheet {title!r}")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _execute(self, request, spreadsheet_id: str, action: str):
        try:
            return request.execute()
        except HttpError as exc:
            status = _http_status(exc)
            message = f"Cannot {action} in spreadsheet {spreadsheet_id}: {exc}"
            if status in (403, 404):
                email = self._service_account_email or "in use"
                message = f"{message}. {_ACCESS_HINT.format(email=email)}"
            logger.warning("Sheets API error (%s) during %s on %s", status, action, spreadsheet_id)
            raise AccessError(message) from exc
        except google_auth_exceptions.GoogleAuthError as exc:
            logger.warning("Authentication failed during %s on %s: %s", action, spreadsheet_id, exc)
            raise AccessError(f"Authentication with Google failed: {exc}") from exc
        except OSError as exc:
            logger.warning("Network failure during %s on %s: %s", action, spreadsheet_id, exc)
            raise AccessError(f"Cannot reach the Sheets API: {exc}") from exc


__all__ = [
    "SCOPES",
    "SheetsClient",
    "Target",
    "a1_data_range",
    "a1_header_range",
    "a1_range",
    "a1_row_range",
    "build_service",
    "column_letter",
    "quote_title",
]
