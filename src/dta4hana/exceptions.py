"""dta4hana exception hierarchy."""


class Dta4HanaError(Exception):
    """Base exception for all dta4hana errors."""


class Dta4HanaConfigError(Dta4HanaError):
    """Raised on configuration or credential validation failure."""


class Dta4HanaSigningError(Dta4HanaError):
    """Raised when the signer is handed input it must never see.

    An empty canonical string means the request was never canonicalized;
    this is a programming defect, not a transient condition.
    """


class Dta4HanaRequestError(Dta4HanaError, ValueError):
    """Raised when a call is made with a malformed method or path."""


_MAX_ERROR_BODY_DISPLAY = 500


class Dta4HanaAPIError(Dta4HanaError):
    """Raised by ``CallResult.unwrap()`` for a server-reported failure.

    Carries status_code, error_code and message exactly as the service sent
    them, plus how many attempts were made. The full message is on the
    attribute; __str__ truncates to keep verbose server errors out of logs.
    """

    def __init__(
        self,
        status_code: int,
        error_code: str | None,
        message: str,
        attempts: int = 1,
    ) -> None:
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.attempts = attempts
        display = (
            message[:_MAX_ERROR_BODY_DISPLAY] + "..."
            if len(message) > _MAX_ERROR_BODY_DISPLAY
            else message
        )
        code = f" {error_code}" if error_code else ""
        super().__init__(
            f"HANA agent error (HTTP {status_code}{code}) after "
            f"{attempts} attempt(s): {display}"
        )


class Dta4HanaTransportError(Dta4HanaError):
    """Raised by ``CallResult.unwrap()`` when no valid response was obtained."""

    def __init__(self, kind: str, detail: str, attempts: int = 1) -> None:
        self.kind = kind
        self.detail = detail
        self.attempts = attempts
        super().__init__(
            f"Transport failure ({kind}) after {attempts} attempt(s): {detail}"
        )
