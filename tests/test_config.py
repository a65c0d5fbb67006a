"""Tests for dta4hana config loading."""

from pathlib import Path

import pytest

from dta4hana import Dta4HanaConfigError, Dta4HanaError
from dta4hana.config import (
    AgentConfig,
    ClientSettings,
    CredentialSettings,
    RetrySettings,
    load_config,
)


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(text, encoding="utf-8")
    return path


# --- Packaged defaults ---


def test_load_packaged_config():
    config = load_config()
    assert isinstance(config, AgentConfig)
    assert config.client.base_url == "https://agent.hana.local"
    assert config.client.connect_timeout_seconds == 5.0
    assert config.client.read_timeout_seconds == 5.0
    assert config.client.user_agent == "dta4hana/1.1.0"


def test_packaged_credentials_section():
    config = load_config()
    assert config.credentials.key_id_env == "DTA4HANA_KEY_ID"
    assert config.credentials.secret_env == "DTA4HANA_SECRET"
    assert config.credentials.credential_file == "~/.dta4hana.json"


def test_packaged_retry_section():
    config = load_config()
    assert config.retry.enabled is True
    assert config.retry.max_attempts == 4
    assert config.retry.retryable_status_codes == [429, 500, 502, 503, 504]
    assert config.retry.retryable_error_codes == ["ServerBusy", "Throttled"]


# --- Explicit files ---


def test_load_explicit_file(tmp_path):
    path = _write(
        tmp_path,
        '[client]\nbase_url = "https://agent.example.com/"\n'
        "[retry]\nmax_attempts = 2\n",
    )
    config = load_config(path)
    assert config.client.base_url == "https://agent.example.com"
    assert config.retry.max_attempts == 2
    assert config.credentials == CredentialSettings()


def test_missing_file(tmp_path):
    with pytest.raises(Dta4HanaConfigError, match="not found"):
        load_config(tmp_path / "nope.toml")


def test_malformed_toml(tmp_path):
    path = _write(tmp_path, "[client\nbase_url = ")
    with pytest.raises(Dta4HanaConfigError, match="Failed to parse"):
        load_config(path)


def test_missing_client_section(tmp_path):
    path = _write(tmp_path, "[retry]\nmax_attempts = 2\n")
    with pytest.raises(Dta4HanaConfigError, match="Invalid config"):
        load_config(path)


def test_unknown_retry_key(tmp_path):
    path = _write(
        tmp_path,
        '[client]\nbase_url = "https://a.example"\n[retry]\nmax_retries = 2\n',
    )
    with pytest.raises(Dta4HanaConfigError, match="Invalid config"):
        load_config(path)


def test_unknown_client_key(tmp_path):
    path = _write(
        tmp_path,
        '[client]\nbase_url = "https://a.example"\nread_timeout = 30\n',
    )
    with pytest.raises(Dta4HanaConfigError, match="read_timeout"):
        load_config(path)


def test_unknown_credentials_key(tmp_path):
    path = _write(
        tmp_path,
        '[client]\nbase_url = "https://a.example"\n'
        '[credentials]\nkey_env = "X"\n',
    )
    with pytest.raises(Dta4HanaConfigError, match="key_env"):
        load_config(path)


def test_config_error_is_base_error(tmp_path):
    with pytest.raises(Dta4HanaError):
        load_config(tmp_path / "nope.toml")


# --- ClientSettings validation ---


class TestClientSettings:
    def test_https_accepted(self):
        assert ClientSettings(base_url="https://a.example").base_url == "https://a.example"

    @pytest.mark.parametrize(
        "url",
        ["http://localhost", "http://localhost:8080", "http://127.0.0.1:9000/", "http://[::1]:80"],
    )
    def test_http_localhost_accepted(self, url):
        assert ClientSettings(base_url=url).base_url == url.rstrip("/")

    @pytest.mark.parametrize(
        "url", ["http://agent.example.com", "http://localhost.evil.com", "ftp://a"]
    )
    def test_insecure_rejected(self, url):
        with pytest.raises(ValueError, match="HTTPS"):
            ClientSettings(base_url=url)

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValueError, match="timeouts"):
            ClientSettings(base_url="https://a.example", read_timeout_seconds=0)


class TestCredentialSettings:
    def test_path_expanded(self):
        settings = CredentialSettings(credential_file="~/creds.json")
        assert settings.credential_path == Path.home() / "creds.json"


class TestRetrySettings:
    def test_defaults(self):
        settings = RetrySettings()
        assert settings.max_attempts == 4
        assert settings.backoff_base_seconds == 1.0
        assert settings.max_wait_seconds == 30.0
