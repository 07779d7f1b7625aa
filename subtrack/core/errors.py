from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    NETWORK = "network"
    SERVER = "server"
    NOT_SUPPORTED = "not_supported"


class SubtrackError(RuntimeError):
    """
    Base error for every failure the engine reports to its callers.

    `status_code` and `detail` are filled when the failure came from the backend.
    """

    kind: ErrorKind = ErrorKind.SERVER

    def __init__(self, message: str, *, status_code: int | None = None, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.detail = detail


class ValidationError(SubtrackError):
    kind = ErrorKind.VALIDATION


class NotFoundError(SubtrackError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(SubtrackError):
    kind = ErrorKind.CONFLICT


class DuplicatePaymentError(ConflictError):
    """Raised when a subscription is marked as paid twice within the guard window."""


class NetworkError(SubtrackError):
    kind = ErrorKind.NETWORK


class ServerError(SubtrackError):
    kind = ErrorKind.SERVER


class NotSupportedError(SubtrackError):
    kind = ErrorKind.NOT_SUPPORTED


_ERRORS_BY_KIND: dict[ErrorKind, type[SubtrackError]] = {
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.CONFLICT: ConflictError,
    ErrorKind.NETWORK: NetworkError,
    ErrorKind.SERVER: ServerError,
    ErrorKind.NOT_SUPPORTED: NotSupportedError,
}


def error_for_kind(kind: ErrorKind) -> type[SubtrackError]:
    return _ERRORS_BY_KIND[kind]
