"""
MIME type lookups for spreadsheet formats.

Maps extensions to MIME types and back, normalizing the parameters and
aliases browsers attach to multipart uploads.
"""

import logging
import mimetypes
from typing import Optional

logger = logging.getLogger(__name__)

MIME_TYPE_MAPPINGS = {
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "xlsm": "application/vnd.ms-excel.sheet.macroEnabled.12",
    "ods": "application/vnd.oasis.opendocument.spreadsheet",
    "csv": "text/csv",
}

# Reverse mapping for content-type to format detection
CONTENT_TYPE_TO_FORMAT = {v: k for k, v in MIME_TYPE_MAPPINGS.items()}

# Non-standard types some clients send for Excel files
MIME_ALIASES = {
    "application/excel": "application/vnd.ms-excel",
    "application/x-excel": "application/vnd.ms-excel",
    "application/x-msexcel": "application/vnd.ms-excel",
    "application/msexcel": "application/vnd.ms-excel",
}

for _ext, _mime in MIME_TYPE_MAPPINGS.items():
    mimetypes.add_type(_mime, f".{_ext}")


def normalize_mime_type(mime_type: Optional[str]) -> Optional[str]:
    """Lower-case, strip parameters such as charset, and resolve aliases."""
    if not mime_type:
        return None
    mime_clean = mime_type.lower().split(";")[0].strip()
    return MIME_ALIASES.get(mime_clean, mime_clean)


def get_mime_type(extension: str) -> str:
    """
    Get MIME type for a file extension.

    Args:
        extension: File extension without the dot (e.g., 'xlsx')

    Returns:
        MIME type string, or application/octet-stream if unknown
    """
    extension = extension.lower().lstrip(".")
    if not extension:
        return "application/octet-stream"

    mime_type = MIME_TYPE_MAPPINGS.get(extension)
    if mime_type:
        return mime_type

    mime_type, _ = mimetypes.guess_type(f"file.{extension}")
    return mime_type or "application/octet-stream"


def get_format_from_mime_type(mime_type: Optional[str]) -> Optional[str]:
    """Get file format/extension from a MIME type, or None if unknown."""
    return CONTENT_TYPE_TO_FORMAT.get(normalize_mime_type(mime_type) or "")
