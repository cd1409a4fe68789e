"""Helpers for loading and validating Google service account credentials.

Credentials come from one of two places: a base64-encoded JSON blob (handy for
container deployments where mounting files is awkward) or a JSON file on disk.
The blob wins when both are configured.
"""

from __future__ import annotations

import base64
import binascii
import json
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

from registry_tools.errors import CredentialsError

__all__ = [
    "REQUIRED_FIELDS",
    "decode_service_account_blob",
    "load_service_account_data",
    "load_service_account_file",
    "resolve_credentials_path",
]


REQUIRED_FIELDS: Iterable[str] = (
    "type",
    "project_id",
    "private_key",
    "client_email",
    "token_uri",
)


def _normalise_private_key(key: str) -> str:
    key = key.replace("\r\n", "\n").replace("\r", "\n")
    key = key.replace("\\n", "\n")
    if not key.endswith("\n"):
        key += "\n"
    return key


def _parse_json(text: str, source: str) -> Mapping[str, object]:
    payload_text = text.lstrip("\ufeff").strip()
    if not payload_text:
        raise CredentialsError(f"Service account JSON from {source} is empty.")
    try:
        payload = json.loads(payload_text)
    except json.JSONDecodeError as exc:
        raise CredentialsError(f"Service account JSON from {source} could not be parsed: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise CredentialsError(f"Service account JSON from {source} must be an object.")
    return payload


def _validate_payload(payload: Mapping[str, object]) -> Dict[str, object]:
    data: Dict[str, object] = dict(payload)
    missing: list[str] = []

    for field in REQUIRED_FIELDS:
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            missing.append(field)

    if data.get("type") != "service_account":
        missing.append("type")

    if missing:
        ordered = ", ".join(sorted(dict.fromkeys(missing)))
        raise CredentialsError(f"Service account JSON missing fields: {ordered}")

    data["private_key"] = _normalise_private_key(str(data["private_key"]))
    return data


def resolve_credentials_path(candidate: str, *, base_dir: Optional[Path] = None) -> Path:
    """Return ``candidate`` as an absolute path, relative to ``base_dir``."""

    path = Path(candidate).expanduser()
    if not path.is_absolute():
        path = (base_dir or Path.cwd()) / path
    return path


def load_service_account_file(path: Path) -> Dict[str, object]:
    """Return validated service account data read from ``path``."""

    if not path.exists():
        raise CredentialsError(f"Service account file not found: {path}")
    try:
        with path.open("r", encoding="utf-8-sig") as handle:
            raw = handle.read()
    except OSError as exc:
        raise CredentialsError(f"Service account file could not be read: {exc}") from exc
    return _validate_payload(_parse_json(raw, str(path)))


def decode_service_account_blob(blob: str) -> Dict[str, object]:
    """Return validated service account data from a base64-encoded JSON blob."""

    try:
        decoded = base64.b64decode(blob.strip(), validate=False).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise CredentialsError(f"GCP_SA_JSON is not valid base64 JSON: {exc}") from exc
    return _validate_payload(_parse_json(decoded, "GCP_SA_JSON"))


def load_service_account_data(*, blob: str = "", path: Optional[Path] = None) -> Dict[str, object]:
    """Return service account data, preferring ``blob`` over ``path``."""

    if blob and blob.strip():
        return decode_service_account_blob(blob)
    if path is None:
        raise CredentialsError("No service account configured (set GCP_SA_JSON or SERVICE_ACCOUNT_FILE).")
    return load_service_account_file(path)
