"""
Upload validation against the spreadsheet allow-list.
"""

from pathlib import Path
from typing import Optional

from ..config import ServiceConfig
from ..utils.error_handling import ErrorCode, ValidationError
from ..utils.logging_config import get_logger
from ..utils.mime_detector import get_format_from_mime_type, normalize_mime_type
from ..utils.temp_file_manager import TempFileInfo, delete_if_exists

logger = get_logger()


class UploadValidator:
    """
    Accepts only allow-listed spreadsheet uploads.

    The extension decides when the filename has one. A filename without an
    extension falls back to the declared MIME type. Rejected uploads are
    deleted from disk before the error propagates.
    """

    def __init__(self, config: ServiceConfig):
        self.allowed_extensions = config.allowed_extensions
        self.allowed_mime_types = {normalize_mime_type(m) for m in config.allowed_mime_types}

    def resolve_format(self, filename: str, content_type: Optional[str]) -> Optional[str]:
        """
        Return the input format (extension without dot) if the upload is allowed.

        Returns:
            'xls', 'xlsx', ... or None if the upload is not on the allow-list
        """
        extension = Path(filename).suffix.lower()
        if extension:
            return extension[1:] if extension in self.allowed_extensions else None

        mime_type = normalize_mime_type(content_type)
        if mime_type and mime_type in self.allowed_mime_types:
            detected = get_format_from_mime_type(mime_type)
            if detected and f".{detected}" in self.allowed_extensions:
                return detected
        return None

    def validate(self, upload: TempFileInfo) -> str:
        """
        Validate a stored upload.

        Returns:
            The resolved input format

        Raises:
            ValidationError: If the upload is empty or not allowed; the temp file is removed
        """
        input_format = self.resolve_format(upload.original_filename, upload.content_type)
        if input_format is None:
            delete_if_exists(upload.path)
            allowed = ", ".join(sorted(self.allowed_extensions))
            logger.info(
                f"Rejected upload {upload.original_filename!r} ({upload.content_type}); allowed: {allowed}"
            )
            raise ValidationError(
                f"File type not allowed. Only {allowed} files are accepted",
                error_code=ErrorCode.INVALID_FORMAT,
            )

        if upload.size == 0:
            delete_if_exists(upload.path)
            raise ValidationError("Uploaded file is empty", error_code=ErrorCode.INVALID_FILE)

        return input_format
