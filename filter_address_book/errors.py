"""Exception taxonomy for the address-book filter."""

from __future__ import annotations


class FilterError(Exception):
    """Base class for all filter errors."""


class ConfigError(FilterError):
    """Configuration could not be loaded.  Fatal at startup."""


class ProtocolError(FilterError):
    """A line from the filter host could not be parsed."""

    def __init__(self, message: str, line: str) -> None:
        super().__init__(f"{message}: {line!r}")
        self.line = line


class AddressNotFound(FilterError, ValueError):
    """No email address could be extracted from the input text."""

    def __init__(self, text: str) -> None:
        super().__init__(f"address not found in {text!r}")
        self.text = text


class SessionTypeError(FilterError, TypeError):
    """The host handed the controller an object that is not a Session."""

    def __init__(self, obj: object) -> None:
        super().__init__(f"expected Session, got {type(obj).__name__}")
        self.obj = obj


# ----------------------------------------------------------------------
# Directory lookups
# ----------------------------------------------------------------------


class DirectoryError(FilterError):
    """Base class for directory service lookup failures."""


class TransportError(DirectoryError):
    """The request never produced a response (connect error, timeout)."""

    def __init__(self, method: str, path: str, cause: Exception) -> None:
        super().__init__(f"{method} {path} failed: {cause}")
        self.method = method
        self.path = path
        self.cause = cause


class RemoteError(DirectoryError):
    """The directory service answered with a non-2xx status."""

    def __init__(self, method: str, path: str, status: str, body: str) -> None:
        message = f"{method} {path} '{status}'"
        if body:
            message = f"{message}\n{body}"
        super().__init__(message)
        self.method = method
        self.path = path
        self.status = status
        self.body = body


class DecodeError(DirectoryError):
    """The response body was not a valid scan response."""

    def __init__(self, detail: str, body: str) -> None:
        super().__init__(f"failed decoding response: {detail}\n{body}")
        self.detail = detail
        self.body = body


class DirectoryScanFailed(DirectoryError):
    """The directory service reported ``success: false``."""

    def __init__(self, message: str) -> None:
        super().__init__(f"scan request failed: {message}")
        self.message = message
