"""Tests for the credential source — environment first, then the JSON file."""

import json
import logging
import os
import stat

import pytest

from dta4hana.config import CredentialSettings
from dta4hana.credentials import load_credential, store_credential
from dta4hana.exceptions import Dta4HanaConfigError
from dta4hana.types import Credential


@pytest.fixture
def settings(tmp_path):
    return CredentialSettings(
        key_id_env="DTA4HANA_TEST_KEY_ID",
        secret_env="DTA4HANA_TEST_SECRET",
        credential_file=str(tmp_path / "creds.json"),
    )


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    monkeypatch.delenv("DTA4HANA_TEST_KEY_ID", raising=False)
    monkeypatch.delenv("DTA4HANA_TEST_SECRET", raising=False)


def _write_file(settings, data):
    settings.credential_path.write_text(json.dumps(data), encoding="utf-8")


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


class TestEnvironment:
    def test_env_resolved(self, settings, monkeypatch):
        monkeypatch.setenv("DTA4HANA_TEST_KEY_ID", "agent-env")
        monkeypatch.setenv("DTA4HANA_TEST_SECRET", "env-secret")
        credential = load_credential(settings)
        assert credential.key_id == "agent-env"
        assert credential.secret.get_secret_value() == b"env-secret"

    def test_env_wins_over_file(self, settings, monkeypatch):
        _write_file(settings, {"key_id": "agent-file", "secret": "file-secret"})
        monkeypatch.setenv("DTA4HANA_TEST_KEY_ID", "agent-env")
        monkeypatch.setenv("DTA4HANA_TEST_SECRET", "env-secret")
        assert load_credential(settings).key_id == "agent-env"

    def test_half_configured_env_raises(self, settings, monkeypatch):
        monkeypatch.setenv("DTA4HANA_TEST_KEY_ID", "agent-env")
        with pytest.raises(Dta4HanaConfigError, match="DTA4HANA_TEST_SECRET"):
            load_credential(settings)


# ---------------------------------------------------------------------------
# File
# ---------------------------------------------------------------------------


class TestFile:
    def test_file_fallback(self, settings):
        _write_file(settings, {"key_id": "agent-file", "secret": "file-secret"})
        credential = load_credential(settings)
        assert credential.key_id == "agent-file"
        assert credential.secret.get_secret_value() == b"file-secret"

    def test_malformed_json(self, settings):
        settings.credential_path.write_text("{nope", encoding="utf-8")
        with pytest.raises(Dta4HanaConfigError, match="Failed to parse"):
            load_credential(settings)

    def test_not_an_object(self, settings):
        _write_file(settings, ["agent", "secret"])
        with pytest.raises(Dta4HanaConfigError, match="JSON object"):
            load_credential(settings)

    def test_missing_secret(self, settings):
        _write_file(settings, {"key_id": "agent-file"})
        with pytest.raises(Dta4HanaConfigError, match="Invalid credential"):
            load_credential(settings)

    def test_empty_secret(self, settings):
        _write_file(settings, {"key_id": "agent-file", "secret": ""})
        with pytest.raises(Dta4HanaConfigError, match="Invalid credential"):
            load_credential(settings)


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


def test_nothing_configured(settings):
    with pytest.raises(Dta4HanaConfigError, match="Credential not found"):
        load_credential(settings)


def test_secret_never_logged(settings, monkeypatch, caplog):
    monkeypatch.setenv("DTA4HANA_TEST_KEY_ID", "agent-env")
    monkeypatch.setenv("DTA4HANA_TEST_SECRET", "env-secret")
    with caplog.at_level(logging.DEBUG, logger="dta4hana.credentials"):
        load_credential(settings)
    assert "agent-env" in caplog.text
    assert "env-secret" not in caplog.text


# ---------------------------------------------------------------------------
# store_credential
# ---------------------------------------------------------------------------


class TestStoreCredential:
    def test_round_trip(self, settings):
        credential = Credential(key_id="agent-1", secret="s3cr3t")
        store_credential(credential, settings.credential_path)
        assert load_credential(settings) == credential

    def test_owner_only_permissions(self, tmp_path):
        path = store_credential(
            Credential(key_id="agent-1", secret="s3cr3t"), tmp_path / "c.json"
        )
        mode = stat.S_IMODE(os.stat(path).st_mode)
        assert mode == 0o600

    def test_overwrites_and_creates_parents(self, tmp_path):
        target = tmp_path / "nested" / "c.json"
        store_credential(Credential(key_id="old", secret="a"), target)
        store_credential(Credential(key_id="new", secret="b"), target)
        data = json.loads(target.read_text(encoding="utf-8"))
        assert data == {"key_id": "new", "secret": "Yg==", "secret_encoding": "base64"}

    def test_binary_secret_round_trip(self, settings):
        credential = Credential(key_id="agent-1", secret=b"\xff\x00\x10")
        store_credential(credential, settings.credential_path)
        loaded = load_credential(settings)
        assert loaded.secret.get_secret_value() == b"\xff\x00\x10"

    def test_invalid_base64_secret(self, settings):
        _write_file(
            settings,
            {"key_id": "agent-1", "secret": "not base64!", "secret_encoding": "base64"},
        )
        with pytest.raises(Dta4HanaConfigError, match="invalid base64"):
            load_credential(settings)

    def test_unknown_secret_encoding(self, settings):
        _write_file(
            settings, {"key_id": "agent-1", "secret": "x", "secret_encoding": "hex"}
        )
        with pytest.raises(Dta4HanaConfigError, match="unsupported secret_encoding"):
            load_credential(settings)
