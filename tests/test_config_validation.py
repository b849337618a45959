"""
Tests for settings selection and environment validation
"""

import json

import pytest

from backoffice.errors import MissingPreconditionError
from backoffice.store.firestore import credentials_info_from_settings
from config import DevelopmentConfig, ProductionConfig, TestingConfig, get_config_class
from config.validation import resolve_service_account_path, validate_cli_environment, validate_http_environment


def test_get_config_class():
    assert get_config_class("testing") is TestingConfig
    assert get_config_class("production") is ProductionConfig
    assert get_config_class("staging") is DevelopmentConfig


def test_get_config_class_reads_flask_env(monkeypatch):
    monkeypatch.setenv("FLASK_ENV", "production")
    assert get_config_class() is ProductionConfig


class TestServiceAccountPath:
    def test_prefers_configured_path(self, tmp_path):
        key = tmp_path / "key.json"
        key.write_text("{}", encoding="utf-8")
        fallback = tmp_path / "fallback.json"
        fallback.write_text("{}", encoding="utf-8")

        settings = {"SERVICE_ACCOUNT_PATH": str(key), "SERVICE_ACCOUNT_FALLBACK_PATH": str(fallback)}

        assert resolve_service_account_path(settings) == str(key)

    def test_falls_back(self, tmp_path):
        fallback = tmp_path / "fallback.json"
        fallback.write_text("{}", encoding="utf-8")

        settings = {"SERVICE_ACCOUNT_PATH": str(tmp_path / "nope.json"), "SERVICE_ACCOUNT_FALLBACK_PATH": str(fallback)}

        assert resolve_service_account_path(settings) == str(fallback)

    def test_nothing_found(self, tmp_path):
        assert resolve_service_account_path({"SERVICE_ACCOUNT_PATH": str(tmp_path / "nope.json")}) is None


class TestCliEnvironment:
    def test_valid(self, tmp_path):
        key = tmp_path / "key.json"
        key.write_text("{}", encoding="utf-8")
        tables = tmp_path / "tables.yaml"
        tables.write_text("version: 1\n", encoding="utf-8")

        is_valid, errors = validate_cli_environment(
            {"SERVICE_ACCOUNT_PATH": str(key), "BACKOFFICE_TABLES_PATH": str(tables)}
        )

        assert is_valid
        assert errors == []

    def test_reports_every_problem(self, tmp_path):
        is_valid, errors = validate_cli_environment(
            {
                "SERVICE_ACCOUNT_PATH": str(tmp_path / "key.json"),
                "BACKOFFICE_TABLES_PATH": str(tmp_path / "tables.yaml"),
                "EXCEL_FILE_PATH": str(tmp_path / "sheet.xlsx"),
            },
            require_spreadsheet=True,
        )

        assert not is_valid
        assert len(errors) == 3
        assert any("Service account key not found" in error for error in errors)
        assert any("Spreadsheet not found" in error for error in errors)


class TestHttpEnvironment:
    def test_blob(self):
        assert validate_http_environment({"FIREBASE_SERVICE_ACCOUNT": json.dumps({"project_id": "vss"})}) == (True, [])

    @pytest.mark.parametrize("blob", ["{not json", "[1, 2]"])
    def test_bad_blob(self, blob):
        is_valid, errors = validate_http_environment({"FIREBASE_SERVICE_ACCOUNT": blob})

        assert not is_valid
        assert "FIREBASE_SERVICE_ACCOUNT" in errors[0]

    def test_discrete_fields(self):
        settings = {
            "FIREBASE_PROJECT_ID": "vss",
            "FIREBASE_CLIENT_EMAIL": "svc@vss.iam.example.org",
            "FIREBASE_PRIVATE_KEY": "KEY",
        }
        assert validate_http_environment(settings) == (True, [])

    def test_missing_fields_are_named(self):
        is_valid, errors = validate_http_environment({"FIREBASE_PROJECT_ID": "vss"})

        assert not is_valid
        assert "FIREBASE_CLIENT_EMAIL" in errors[0]
        assert "FIREBASE_PRIVATE_KEY" in errors[0]


class TestCredentialsInfo:
    def test_blob_wins(self):
        info = credentials_info_from_settings(
            {"FIREBASE_SERVICE_ACCOUNT": json.dumps({"project_id": "from-blob"}), "FIREBASE_PROJECT_ID": "other"}
        )
        assert info == {"project_id": "from-blob"}

    def test_discrete_fields_unescape_private_key(self):
        info = credentials_info_from_settings(
            {
                "FIREBASE_PROJECT_ID": "vss",
                "FIREBASE_CLIENT_EMAIL": "svc@vss.iam.example.org",
                "FIREBASE_PRIVATE_KEY": "-----BEGIN-----\\nabc\\n-----END-----",
            }
        )
        assert info["type"] == "service_account"
        assert info["private_key"] == "-----BEGIN-----\nabc\n-----END-----"

    def test_unconfigured(self):
        assert credentials_info_from_settings({}) is None

    def test_invalid_blob(self):
        with pytest.raises(MissingPreconditionError):
            credentials_info_from_settings({"FIREBASE_SERVICE_ACCOUNT": "{oops"})
