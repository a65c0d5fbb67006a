"""dta4hana — signed client for the HANA agent data-transfer service."""

import importlib

from dta4hana._nonce import NonceSource, SequenceNonceSource, SystemNonceSource
from dta4hana._signing import canonicalize, sign
from dta4hana.config import (
    AgentConfig,
    ClientSettings,
    CredentialSettings,
    RetrySettings,
    load_config,
)
from dta4hana.credentials import load_credential, store_credential
from dta4hana.exceptions import (
    Dta4HanaAPIError,
    Dta4HanaConfigError,
    Dta4HanaError,
    Dta4HanaRequestError,
    Dta4HanaSigningError,
    Dta4HanaTransportError,
)
from dta4hana.interpreter import interpret
from dta4hana.types import (
    ApplicationError,
    CallResult,
    ConfigurationError,
    Credential,
    Outcome,
    RetryState,
    SignableRequest,
    Success,
    TransportError,
)

__version__ = "1.1.0"

# Network-facing classes are lazily imported to avoid loading httpx at
# import time. `from dta4hana import AgentClient` still works through
# __getattr__.
_LAZY_IMPORTS: dict[str, str] = {
    "AgentClient": "dta4hana.client",
    "load_client": "dta4hana.client",
    "RequestDispatcher": "dta4hana.dispatcher",
    "RetryController": "dta4hana.retry",
    "HttpxTransport": "dta4hana.transport",
    "Transport": "dta4hana.transport",
    "TransportResponse": "dta4hana.transport",
}


def __getattr__(name: str):
    if name in _LAZY_IMPORTS:
        module = importlib.import_module(_LAZY_IMPORTS[name])
        attr = getattr(module, name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module 'dta4hana' has no attribute {name!r}")


__all__ = [
    # Client (lazy)
    "AgentClient",
    "load_client",
    "RequestDispatcher",
    "RetryController",
    "HttpxTransport",
    "Transport",
    "TransportResponse",
    # Config
    "AgentConfig",
    "ClientSettings",
    "CredentialSettings",
    "RetrySettings",
    "load_config",
    # Credentials
    "load_credential",
    "store_credential",
    # Signing
    "canonicalize",
    "sign",
    "NonceSource",
    "SequenceNonceSource",
    "SystemNonceSource",
    # Interpretation
    "interpret",
    # Types
    "ApplicationError",
    "CallResult",
    "ConfigurationError",
    "Credential",
    "Outcome",
    "RetryState",
    "SignableRequest",
    "Success",
    "TransportError",
    # Exceptions
    "Dta4HanaAPIError",
    "Dta4HanaConfigError",
    "Dta4HanaError",
    "Dta4HanaRequestError",
    "Dta4HanaSigningError",
    "Dta4HanaTransportError",
]
