from __future__ import annotations

"""Error taxonomy shared by the storage layer and its callers."""

import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    NETWORK_ERROR = "NETWORK_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PERMISSION_ERROR = "PERMISSION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class AppError(Exception):
    """Error carrying an internal message plus a message safe to show users."""

    default_code = ErrorCode.UNKNOWN_ERROR
    default_user_message = "Something went wrong. Please try again."
    default_retryable = True

    def __init__(
        self,
        message: str,
        *,
        code: Optional[ErrorCode] = None,
        user_message: Optional[str] = None,
        retryable: Optional[bool] = None,
        remote_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.user_message = user_message or self.default_user_message
        self.retryable = self.default_retryable if retryable is None else retryable
        self.remote_code = remote_code

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "userMessage": self.user_message,
            "retryable": self.retryable,
        }


class ValidationError(AppError):
    default_code = ErrorCode.VALIDATION_ERROR
    default_user_message = "Please check the information you entered."
    default_retryable = False


class RemoteUnavailable(AppError):
    """Network or server failure talking to the remote store."""

    default_code = ErrorCode.NETWORK_ERROR
    default_user_message = "Unable to connect to the server. Please check your internet connection."


class SchemaMismatch(RemoteUnavailable):
    """Remote table or column is missing; handled exactly like an outage."""

    default_code = ErrorCode.DATABASE_ERROR


class RecordNotFound(AppError):
    default_code = ErrorCode.NOT_FOUND
    default_user_message = "We couldn't find that item."
    default_retryable = False


class DuplicateRecord(AppError):
    default_code = ErrorCode.DATABASE_ERROR
    default_retryable = False


class RemoteRejected(AppError):
    """The remote store answered but refused the operation."""

    default_code = ErrorCode.PERMISSION_ERROR
    default_user_message = "You do not have permission to perform this action."
    default_retryable = False


class OwnershipSetupFailed(AppError):
    default_code = ErrorCode.PERMISSION_ERROR
    default_user_message = "Unable to set up your account. Please try signing in again."


class SuggestionError(AppError):
    default_user_message = (
        "Unable to generate AI suggestions at this time. Please try again later."
    )


def handle_error(error: BaseException, context: Optional[str] = None) -> AppError:
    """Log ``error`` and normalize it into an :class:`AppError`."""

    logger.error("app.error", extra={"context": context or "application", "error": repr(error)})

    if isinstance(error, AppError):
        return error

    message = str(error) or error.__class__.__name__
    lowered = message.lower()
    if "network" in lowered or "fetch" in lowered or isinstance(error, (ConnectionError, TimeoutError)):
        return RemoteUnavailable(message)
    if "permission" in lowered or "unauthorized" in lowered or isinstance(error, PermissionError):
        return RemoteRejected(message)
    return AppError(message)


__all__ = [
    "ErrorCode",
    "AppError",
    "ValidationError",
    "RemoteUnavailable",
    "SchemaMismatch",
    "RecordNotFound",
    "DuplicateRecord",
    "RemoteRejected",
    "OwnershipSetupFailed",
    "SuggestionError",
    "handle_error",
]
