"""
Custom exceptions for the SafeGig registry mirror.
Provides structured error handling for chain sync and the read API.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class MirrorException(Exception):
    """Base exception for the registry mirror."""

    def __init__(
        self,
        message: str,
        error_code: str = "MIRROR_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


# Identity / read side
class IdentityNotFoundError(MirrorException):
    """Raised when a wallet has no mirrored user."""

    def __init__(self, wallet_address: str, details: Optional[Dict[str, Any]] = None):
        message = f"User not found: {wallet_address}"
        super().__init__(message, "IDENTITY_NOT_FOUND", details)


class InvalidWalletAddressError(MirrorException):
    """Raised when an invalid wallet address is provided."""

    def __init__(self, wallet_address: str, details: Optional[Dict[str, Any]] = None):
        message = f"Invalid wallet address: {wallet_address}"
        super().__init__(message, "INVALID_WALLET_ADDRESS", details)


# Chain client
class RpcUnavailableError(MirrorException):
    """Raised when the RPC endpoint cannot be reached or times out. Retryable."""

    def __init__(self, message: str = "RPC endpoint unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "RPC_UNAVAILABLE", details)


class RpcRangeTooLargeError(MirrorException):
    """Raised when the provider rejects an eth_getLogs block window."""

    def __init__(self, from_block: int, to_block: int, details: Optional[Dict[str, Any]] = None):
        self.from_block = from_block
        self.to_block = to_block
        message = f"Provider rejected block range {from_block}-{to_block}; lower BATCH_SIZE"
        super().__init__(message, "RPC_RANGE_TOO_LARGE", details)


class EventDecodeError(MirrorException):
    """Raised when a single log cannot be decoded into a registration."""

    def __init__(self, message: str = "Malformed event log", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "EVENT_DECODE_ERROR", details)


# Persistence
class RepositoryWriteFailedError(MirrorException):
    """Raised when a mirrored entity cannot be written."""

    def __init__(self, message: str = "Repository write failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "REPOSITORY_WRITE_FAILED", details)


class CursorWriteFailedError(MirrorException):
    """Raised when the sync cursor cannot be persisted."""

    def __init__(self, contract_address: str, block: int, details: Optional[Dict[str, Any]] = None):
        message = f"Failed to advance cursor for {contract_address} to block {block}"
        super().__init__(message, "CURSOR_WRITE_FAILED", details)


class DatabaseError(MirrorException):
    """Raised when a database read fails."""

    def __init__(self, message: str = "Database operation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DATABASE_ERROR", details)


# Validation
class ValidationError(MirrorException):
    """Raised when input validation fails."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


# Sync runs
class SyncInProgressError(MirrorException):
    """Raised when a run is requested for an address that is already syncing."""

    def __init__(self, contract_address: str, details: Optional[Dict[str, Any]] = None):
        message = f"Sync already running for {contract_address}"
        super().__init__(message, "SYNC_IN_PROGRESS", details)


class SyncRunError(MirrorException):
    """
    Raised when a run aborts.

    Wraps the underlying error and reports where the cursor was left so the
    caller can see exactly how far the mirror advanced.
    """

    def __init__(
        self,
        cause: MirrorException,
        contract_address: str,
        last_synced_block: Optional[int],
        details: Optional[Dict[str, Any]] = None
    ):
        self.cause = cause
        self.contract_address = contract_address
        self.last_synced_block = last_synced_block
        payload = {
            "cause_code": cause.error_code,
            "contract_address": contract_address,
            "last_synced_block": last_synced_block,
        }
        payload.update(details or {})
        message = f"Sync aborted for {contract_address}: {cause.message}"
        super().__init__(message, "SYNC_RUN_FAILED", payload)


def create_http_exception(
    exc: MirrorException,
    status_code: int = status.HTTP_400_BAD_REQUEST
) -> HTTPException:
    """
    Convert a MirrorException to an HTTPException.

    Args:
        exc: MirrorException instance
        status_code: HTTP status code

    Returns:
        HTTPException: FastAPI HTTP exception
    """
    return HTTPException(
        status_code=status_code,
        detail={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


def get_exception_status_code(exc: MirrorException) -> int:
    """
    Get the appropriate HTTP status code for a MirrorException.

    A SyncRunError takes the status of the error that aborted the run.

    Args:
        exc: MirrorException instance

    Returns:
        int: HTTP status code
    """
    if isinstance(exc, SyncRunError):
        return get_exception_status_code(exc.cause)

    status_mapping = {
        # Identity / read side
        "IDENTITY_NOT_FOUND": status.HTTP_404_NOT_FOUND,
        "INVALID_WALLET_ADDRESS": status.HTTP_400_BAD_REQUEST,

        # Chain client
        "RPC_UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
        "RPC_RANGE_TOO_LARGE": status.HTTP_422_UNPROCESSABLE_ENTITY,
        "EVENT_DECODE_ERROR": status.HTTP_422_UNPROCESSABLE_ENTITY,

        # Persistence
        "REPOSITORY_WRITE_FAILED": status.HTTP_500_INTERNAL_SERVER_ERROR,
        "CURSOR_WRITE_FAILED": status.HTTP_500_INTERNAL_SERVER_ERROR,
        "DATABASE_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,

        # Validation
        "VALIDATION_ERROR": status.HTTP_422_UNPROCESSABLE_ENTITY,

        # Sync runs
        "SYNC_IN_PROGRESS": status.HTTP_409_CONFLICT,
    }

    return status_mapping.get(exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
