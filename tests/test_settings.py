from __future__ import annotations

import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from registry_tools import settings


def test_defaults_without_environment(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        config = settings.load_settings({})

    assert config.port == 5500
    assert config.host == "0.0.0.0"
    assert config.registry_sheet == "Registry"
    assert config.cors_origins == []
    assert config.webhook_for("dev").url == ""
    assert config.webhook_for("prod").header_name == "X-Webhook-Token"
    assert "REGISTRY_SPREADSHEET_ID" in caplog.text


def test_environment_values_are_trimmed_and_parsed() -> None:
    config = settings.load_settings(
        {
            "PORT": " 8080 ",
            "CORS_ORIGIN": "https://a.example.com, ,https://b.example.com",
            "API_KEY": " key ",
            "REGISTRY_SPREADSHEET_ID": " reg-id ",
            "REGISTRY_SHEET": "Routes",
            "GCP_SA_JSON": "abc",
            "N8N_PROD_WEBHOOK_URL": "https://hooks.example.com/prod",
            "N8N_PROD_WEBHOOK_HEADER_NAME": "X-Token",
            "N8N_PROD_WEBHOOK_TOKEN": "t0k",
            "LOG_LEVEL": "debug",
        }
    )

    assert config.port == 8080
    assert config.cors_origins == ["https://a.example.com", "https://b.example.com"]
    assert config.api_key == "key"
    assert config.registry_spreadsheet_id == "reg-id"
    assert config.registry_sheet == "Routes"
    assert config.service_account_blob == "abc"
    assert config.webhook_for("prod") == settings.WebhookSettings("https://hooks.example.com/prod", "X-Token", "t0k")
    assert config.webhook_for("prod").configured is True
    assert config.log_level == "DEBUG"


def test_invalid_port_falls_back_to_default() -> None:
    assert settings.load_settings({"PORT": "abc"}).port == 5500
    assert settings.load_settings({"PORT": "70000"}).port == 5500


def test_relative_credentials_path_resolves_against_working_directory(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    config = settings.load_settings({"SERVICE_ACCOUNT_FILE": "keys/sa.json"})

    assert config.credentials_path() == tmp_path / "keys" / "sa.json"
    assert config.credentials_path(base_dir=tmp_path / "conf") == tmp_path / "conf" / "keys" / "sa.json"


def test_absolute_credentials_path_is_kept(tmp_path: Path) -> None:
    config = settings.load_settings({"SERVICE_ACCOUNT_FILE": str(tmp_path / "sa.json")})

    assert config.credentials_path() == tmp_path / "sa.json"
