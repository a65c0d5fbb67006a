"""dta4hana config loading — TOML-based, validated on load."""

import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from dta4hana.exceptions import Dta4HanaConfigError

_LOCAL_HOSTS = ("localhost", "127.0.0.1", "[::1]")


# ---------------------------------------------------------------------------
# Config models
# ---------------------------------------------------------------------------


class ClientSettings(BaseModel):
    """Connection settings from the [client] section."""

    model_config = ConfigDict(extra="forbid")

    base_url: str
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 5.0
    user_agent: str = "dta4hana"
    log_level: str = "DEBUG"

    @field_validator("base_url")
    @classmethod
    def _validate_https(cls, v: str) -> str:
        """Enforce HTTPS for remote hosts. Allow HTTP only for localhost."""
        v = v.rstrip("/")
        if v.startswith("https://"):
            return v
        if v.startswith("http://") and any(
            v == f"http://{host}"
            or v.startswith((f"http://{host}:", f"http://{host}/"))
            for host in _LOCAL_HOSTS
        ):
            return v
        raise ValueError(f"base_url must use HTTPS for remote hosts. Got: {v}")

    @field_validator("connect_timeout_seconds", "read_timeout_seconds")
    @classmethod
    def _validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be > 0")
        return v


class CredentialSettings(BaseModel):
    """Where to find the shared secret, from the [credentials] section."""

    model_config = ConfigDict(extra="forbid")

    key_id_env: str = "DTA4HANA_KEY_ID"
    secret_env: str = "DTA4HANA_SECRET"
    credential_file: str = "~/.dta4hana.json"

    @property
    def credential_path(self) -> Path:
        return Path(self.credential_file).expanduser()


class RetrySettings(BaseModel):
    """Retry controller settings from the [retry] section."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    max_attempts: int = 4
    backoff_base_seconds: float = 1.0
    max_wait_seconds: float = 30.0
    retryable_status_codes: list[int] = [429, 500, 502, 503, 504]
    retryable_error_codes: list[str] = ["ServerBusy", "Throttled"]


class AgentConfig(BaseModel):
    """Loaded config.toml."""

    client: ClientSettings
    credentials: CredentialSettings = CredentialSettings()
    retry: RetrySettings = RetrySettings()


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _default_config_path() -> Path:
    """Return the packaged config.toml."""
    return Path(__file__).parent / "config.toml"


def _load_toml_file(path: Path, context: str) -> dict[str, Any]:
    """Load and parse a TOML file with consistent error handling.

    Raises:
        Dta4HanaConfigError: On missing file or malformed TOML.
    """
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        raise Dta4HanaConfigError(f"{context} not found: {path}")
    except tomllib.TOMLDecodeError as e:
        raise Dta4HanaConfigError(f"Failed to parse {context}: {e}")


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


def load_config(path: str | Path | None = None) -> AgentConfig:
    """Load and validate a config file.

    Args:
        path: Explicit TOML file. Defaults to the packaged config.toml.

    Raises:
        Dta4HanaConfigError: On any failure.
    """
    config_path = Path(path) if path is not None else _default_config_path()
    data = _load_toml_file(config_path, "config")

    try:
        return AgentConfig(
            client=ClientSettings(**data.get("client", {})),
            credentials=CredentialSettings(**data.get("credentials", {})),
            retry=RetrySettings(**data.get("retry", {})),
        )
    except ValidationError as e:
        raise Dta4HanaConfigError(f"Invalid config {config_path}: {e}")
