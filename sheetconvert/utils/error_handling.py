"""
Centralized error handling for the spreadsheet conversion service.

This module provides the conversion error taxonomy, standardized error codes
and the structured JSON error responses returned by every endpoint.
"""

import logging
import re
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, Any, Iterable, List, Optional, Tuple, Union
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standardized error codes for consistent error handling."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Upload validation errors
    INVALID_FILE = "INVALID_FILE"
    INVALID_FORMAT = "INVALID_FORMAT"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    MISSING_PARAMETER = "MISSING_PARAMETER"

    # Conversion pipeline errors
    CONVERTER_UNAVAILABLE = "CONVERTER_UNAVAILABLE"
    CONVERTER_EXECUTION_FAILED = "CONVERTER_EXECUTION_FAILED"
    OUTPUT_NOT_FOUND = "OUTPUT_NOT_FOUND"
    REMOTE_SERVICE_ERROR = "REMOTE_SERVICE_ERROR"
    FILESYSTEM_ERROR = "FILESYSTEM_ERROR"
    CONVERSION_FAILED = "CONVERSION_FAILED"


class ErrorSeverity(str, Enum):
    """Error severity levels for logging and response handling."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Error code to HTTP status code mapping.
# Every conversion pipeline failure is reported as a 500.
ERROR_STATUS_MAP: Dict[ErrorCode, int] = {
    # 4xx Client Errors
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.INVALID_FILE: 400,
    ErrorCode.INVALID_FORMAT: 400,
    ErrorCode.MISSING_PARAMETER: 400,
    ErrorCode.FILE_TOO_LARGE: 413,

    # 5xx Server Errors
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.CONVERTER_UNAVAILABLE: 500,
    ErrorCode.CONVERTER_EXECUTION_FAILED: 500,
    ErrorCode.OUTPUT_NOT_FOUND: 500,
    ErrorCode.REMOTE_SERVICE_ERROR: 500,
    ErrorCode.FILESYSTEM_ERROR: 500,
    ErrorCode.CONVERSION_FAILED: 500,
}

# Error code to severity mapping
ERROR_SEVERITY_MAP: Dict[ErrorCode, ErrorSeverity] = {
    ErrorCode.INTERNAL_ERROR: ErrorSeverity.CRITICAL,
    ErrorCode.FILESYSTEM_ERROR: ErrorSeverity.HIGH,
    ErrorCode.CONVERSION_FAILED: ErrorSeverity.HIGH,
    ErrorCode.CONVERTER_UNAVAILABLE: ErrorSeverity.HIGH,
    ErrorCode.CONVERTER_EXECUTION_FAILED: ErrorSeverity.MEDIUM,
    ErrorCode.OUTPUT_NOT_FOUND: ErrorSeverity.MEDIUM,
    ErrorCode.REMOTE_SERVICE_ERROR: ErrorSeverity.MEDIUM,
    ErrorCode.INVALID_REQUEST: ErrorSeverity.MEDIUM,
    ErrorCode.INVALID_FILE: ErrorSeverity.LOW,
    ErrorCode.INVALID_FORMAT: ErrorSeverity.LOW,
    ErrorCode.MISSING_PARAMETER: ErrorSeverity.LOW,
    ErrorCode.FILE_TOO_LARGE: ErrorSeverity.LOW,
}


# ===== EXCEPTION TAXONOMY =====

class ConversionError(Exception):
    """Base class for every error raised by the conversion pipeline."""

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def status_code(self) -> int:
        return ERROR_STATUS_MAP.get(self.error_code, 500)


class ValidationError(ConversionError):
    """Missing file, disallowed type or oversized upload."""

    error_code = ErrorCode.INVALID_FILE

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INVALID_FILE,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.error_code = error_code


class ConverterUnavailable(ConversionError):
    """No usable converter: binary not installed, unstartable, or no credentials."""

    error_code = ErrorCode.CONVERTER_UNAVAILABLE


class ConverterExecutionError(ConversionError):
    """The converter ran but reported failure (nonzero exit, timeout, bad output)."""

    error_code = ErrorCode.CONVERTER_EXECUTION_FAILED


class OutputNotFound(ConversionError):
    """The converter finished but its output never appeared."""

    error_code = ErrorCode.OUTPUT_NOT_FOUND


class RemoteServiceError(ConversionError):
    """The hosted conversion API failed or returned an unusable payload."""

    error_code = ErrorCode.REMOTE_SERVICE_ERROR


class FilesystemError(ConversionError):
    """Moving or deleting a pipeline file failed."""

    error_code = ErrorCode.FILESYSTEM_ERROR


class AllStrategiesFailed(ConversionError):
    """Every configured strategy failed; carries each strategy's reason."""

    error_code = ErrorCode.CONVERSION_FAILED

    def __init__(self, failures: List[Tuple[str, ConversionError]]):
        self.failures = failures
        summary = "; ".join(f"{name}: {error.message}" for name, error in failures)
        super().__init__(
            f"All conversion strategies failed ({summary})",
            details={
                "attempts": [
                    {"strategy": name, "error": error.error_code.value, "reason": error.message}
                    for name, error in failures
                ]
            }
        )


# ===== RESPONSE HELPERS =====

def scrub_paths(text: str, directories: Iterable[Union[str, Path]]) -> str:
    """Strip private directory paths from ``text``, keeping relative names."""
    for directory in directories:
        directory = str(directory).rstrip("\\/")
        if directory:
            text = text.replace(directory + "/", "").replace(directory + "\\", "")
            text = text.replace(directory, "")
    # Any remaining absolute path keeps only its file name; URLs are left alone
    return re.sub(r"(?<![\w.:/\\-])(?:[A-Za-z]:)?(?:[\\/][^\\/\s'\"]+)+[\\/]([^\\/\s'\"]+)", r"\1", text)


def create_error_response(
    error_code: Union[ErrorCode, str],
    details: Optional[str] = None,
    status_code: Optional[int] = None,
    **kwargs
) -> JSONResponse:
    """
    Create a consistent JSON error response across all endpoints.

    Args:
        error_code: Error code from ErrorCode enum or custom string
        details: Additional error details (will be truncated to 1000 chars)
        status_code: Override the default HTTP status code
        **kwargs: Additional fields to include in the error response

    Returns:
        JSONResponse with standardized error format
    """
    # Handle both ErrorCode enum and string error codes
    if isinstance(error_code, ErrorCode):
        error_type = error_code.value
        if status_code is None:
            status_code = ERROR_STATUS_MAP.get(error_code, 500)
        severity = ERROR_SEVERITY_MAP.get(error_code, ErrorSeverity.MEDIUM)
    else:
        error_type = str(error_code)
        if status_code is None:
            status_code = 500
        severity = ErrorSeverity.MEDIUM

    error_data = {
        "success": False,
        "error": error_type,
        "timestamp": datetime.now().isoformat() + "Z",
        "status_code": status_code,
        "severity": severity.value
    }

    if details:
        error_data["details"] = str(details)[:1000]  # Limit details length

    # Add any additional fields
    error_data.update(kwargs)

    # Log the error with appropriate level
    log_message = f"Error response: {error_data}"
    if severity == ErrorSeverity.CRITICAL:
        logger.critical(log_message)
    elif severity == ErrorSeverity.HIGH:
        logger.error(log_message)
    elif severity == ErrorSeverity.MEDIUM:
        logger.warning(log_message)
    else:
        logger.info(log_message)

    return JSONResponse(status_code=status_code, content=error_data)


def conversion_error_response(
    error: ConversionError,
    private_dirs: Iterable[Union[str, Path]] = ()
) -> JSONResponse:
    """Turn a pipeline exception into the structured error payload."""
    private_dirs = list(private_dirs)
    extra: Dict[str, Any] = {}
    attempts = error.details.get("attempts")
    if attempts:
        extra["attempts"] = [
            {**attempt, "reason": scrub_paths(attempt["reason"], private_dirs)}
            for attempt in attempts
        ]
    return create_error_response(
        error.error_code,
        details=scrub_paths(error.message, private_dirs),
        **extra
    )
