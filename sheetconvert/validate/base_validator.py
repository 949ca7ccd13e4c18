"""
Base file validator classes for converted output checks.

Converters sometimes exit cleanly yet leave a truncated or empty file
behind. These validators confirm a produced file really is the requested
spreadsheet format before it is published.
"""

import io
import logging
import zipfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union, Any, Dict

logger = logging.getLogger(__name__)


class FormatValidationError(Exception):
    """Raised when a file does not match the format it claims to be."""
    def __init__(self, message: str, format_type: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.format_type = format_type
        self.details = details or {}


class BaseFileValidator(ABC):
    """
    Base class for file format validators.

    Handles the file reading and empty-file checks shared by every format.
    """

    def __init__(self, format_name: str):
        self.format_name = format_name
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def validate_file(self, file_path: Union[str, Path], **options) -> bool:
        """
        Validate the file at ``file_path``.

        Raises:
            FormatValidationError: If validation fails
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise FormatValidationError(
                f"File does not exist: {file_path.name}",
                format_type=self.format_name
            )
        if file_path.stat().st_size == 0:
            raise FormatValidationError(
                "File is empty (size 0)",
                format_type=self.format_name,
                details={"file_size": 0}
            )

        content = self._read_file_content(file_path)
        return self._validate_content(content, **options)

    def _read_file_content(self, file_path: Path) -> Union[str, bytes]:
        try:
            with open(file_path, 'r', encoding='utf-8', errors='replace') as f:
                return f.read()
        except OSError as e:
            raise FormatValidationError(
                f"Failed to read file: {e}",
                format_type=self.format_name,
                details={"read_error": str(e)}
            )

    @abstractmethod
    def _validate_content(self, content: Union[str, bytes], **options) -> bool:
        """Perform format-specific content validation."""


class TextBasedValidator(BaseFileValidator):
    """Base class for text-based file validators."""

    def _validate_basic_text_content(self, content: str) -> None:
        if not content.strip():
            raise FormatValidationError(
                "File is empty or contains only whitespace",
                format_type=self.format_name,
                details={"content_length": len(content)}
            )

        if '\x00' in content:
            raise FormatValidationError(
                "File contains binary data (null bytes)",
                format_type=self.format_name
            )


class ArchiveBasedValidator(BaseFileValidator):
    """
    Base class for ZIP based formats (OOXML, OpenDocument).

    Args:
        format_name: Format label used in error messages
        required_files: Archive members that must be present
    """

    def __init__(self, format_name: str, required_files: list):
        super().__init__(format_name)
        self.required_files = required_files

    def _read_file_content(self, file_path: Path) -> bytes:
        try:
            with open(file_path, 'rb') as f:
                return f.read()
        except OSError as e:
            raise FormatValidationError(
                f"Failed to read binary file: {e}",
                format_type=self.format_name,
                details={"read_error": str(e)}
            )

    def _validate_basic_archive_content(self, content: bytes) -> None:
        """Validate archive structure and required members from bytes content."""
        try:
            with zipfile.ZipFile(io.BytesIO(content), 'r') as zf:
                namelist = zf.namelist()
        except zipfile.BadZipFile as e:
            raise FormatValidationError(
                f"Invalid archive file: {e}",
                format_type=self.format_name,
                details={"archive_error": str(e)}
            )

        missing_files = [name for name in self.required_files if name not in namelist]
        if missing_files:
            raise FormatValidationError(
                f"Missing required files: {missing_files}",
                format_type=self.format_name,
                details={
                    "missing_files": missing_files,
                    "available_files": namelist[:10]  # Limit for readability
                }
            )

    def _extract_file_from_archive(self, content: bytes, filename: str) -> Optional[bytes]:
        try:
            with zipfile.ZipFile(io.BytesIO(content), 'r') as zf:
                if filename in zf.namelist():
                    return zf.read(filename)
        except zipfile.BadZipFile:
            pass
        return None


def create_validator_for_format(format_name: str) -> BaseFileValidator:
    """
    Factory function to create the validator for an output format.

    Raises:
        ValueError: If format is not supported
    """
    # Import here to avoid circular imports
    from .formats import csv, xlsx

    format_validators = {
        'xlsx': xlsx.XLSXValidator,
        'csv': csv.CSVValidator,
    }

    validator_class = format_validators.get(format_name.lower())
    if not validator_class:
        raise ValueError(f"Unsupported format: {format_name}")

    return validator_class()
