"""Credential source — environment variables first, then a JSON credential file."""

from __future__ import annotations

import base64
import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from dta4hana.config import CredentialSettings
from dta4hana.exceptions import Dta4HanaConfigError
from dta4hana.types import Credential

logger = logging.getLogger(__name__)

SECRET_ENCODING_BASE64 = "base64"


def _from_env(settings: CredentialSettings) -> Credential | None:
    key_id = os.environ.get(settings.key_id_env)
    secret = os.environ.get(settings.secret_env)
    if not key_id and not secret:
        return None
    if not key_id or not secret:
        missing = settings.key_id_env if not key_id else settings.secret_env
        raise Dta4HanaConfigError(
            f"Environment variable '{missing}' is not set. "
            f"Set both '{settings.key_id_env}' and '{settings.secret_env}'."
        )
    return _build(key_id, secret, source="environment")


def _from_file(path: Path) -> Credential | None:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except json.JSONDecodeError as e:
        raise Dta4HanaConfigError(f"Failed to parse credential file {path}: {e}")

    if not isinstance(data, dict):
        raise Dta4HanaConfigError(f"Credential file {path} must hold a JSON object")

    secret = data.get("secret")
    encoding = data.get("secret_encoding")
    if encoding == SECRET_ENCODING_BASE64:
        try:
            secret = base64.b64decode(secret, validate=True)
        except (TypeError, ValueError) as e:
            raise Dta4HanaConfigError(
                f"Credential file {path} holds an invalid base64 secret: {e}"
            )
    elif encoding is not None:
        raise Dta4HanaConfigError(
            f"Credential file {path} has unsupported secret_encoding {encoding!r}"
        )
    return _build(data.get("key_id"), secret, source=str(path))


def _build(key_id: object, secret: object, source: str) -> Credential:
    try:
        credential = Credential(key_id=key_id, secret=secret)
    except ValidationError as e:
        raise Dta4HanaConfigError(f"Invalid credential from {source}: {e}")
    logger.debug("Loaded credential key_id=%s from %s", credential.key_id, source)
    return credential


def load_credential(settings: CredentialSettings | None = None) -> Credential:
    """Resolve the credential once at startup.

    Resolution order:
        1. Both environment variables named in settings.
        2. The JSON credential file (``{"key_id": ..., "secret": ...}``).
        3. Raise Dta4HanaConfigError.
    """
    settings = settings or CredentialSettings()

    credential = _from_env(settings)
    if credential is not None:
        return credential

    credential = _from_file(settings.credential_path)
    if credential is not None:
        return credential

    raise Dta4HanaConfigError(
        f"Credential not found. Checked environment variables "
        f"'{settings.key_id_env}'/'{settings.secret_env}' and "
        f"file '{settings.credential_path}'."
    )


def store_credential(credential: Credential, path: str | Path) -> Path:
    """Write the credential as JSON, readable by the owner only.

    The secret is stored base64-encoded so any byte sequence round-trips.
    Overwrites an existing file.
    """
    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "key_id": credential.key_id,
        "secret": base64.b64encode(credential.secret.get_secret_value()).decode("ascii"),
        "secret_encoding": SECRET_ENCODING_BASE64,
    }
    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(payload, f)
    os.chmod(target, 0o600)
    logger.debug("Stored credential key_id=%s in %s", credential.key_id, target)
    return target
