from .config import Settings, UserPreferences, get_settings
from .errors import (
    ConflictError,
    DuplicatePaymentError,
    ErrorKind,
    NetworkError,
    NotFoundError,
    NotSupportedError,
    ServerError,
    SubtrackError,
    ValidationError,
)
from .result import Result

__all__ = [
    "ConflictError",
    "DuplicatePaymentError",
    "ErrorKind",
    "NetworkError",
    "NotFoundError",
    "NotSupportedError",
    "Result",
    "ServerError",
    "Settings",
    "SubtrackError",
    "UserPreferences",
    "ValidationError",
    "get_settings",
]
