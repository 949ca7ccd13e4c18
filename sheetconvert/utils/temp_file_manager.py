"""
Temporary file management for upload handling.

This module provides:
- Collision-free naming (millisecond timestamp plus random disambiguator)
- Per-request work directories so concurrent conversions never share files
- Streaming of uploads to disk with a size limit
- Idempotent cleanup that logs instead of raising
"""

import os
import re
import secrets
import shutil
import time
from pathlib import Path
from typing import Optional, List, Union

from fastapi import UploadFile

from .error_handling import ErrorCode, FilesystemError, ValidationError
from .logging_config import get_logger

logger = get_logger()

CHUNK_SIZE = 1024 * 1024

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def safe_filename(filename: str) -> str:
    """Reduce a client supplied name to a safe basename."""
    name = os.path.basename(filename.replace("\\", "/"))
    name = _UNSAFE_CHARS.sub("_", name).lstrip(".")
    return name or "upload"


def unique_token() -> str:
    """Millisecond timestamp plus 8 random hex chars."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def delete_if_exists(path: Optional[Union[str, Path]]) -> bool:
    """
    Remove a file if it is present.

    Safe to call any number of times on the same path. Failures are logged,
    never raised, so cleanup can't block a response.

    Returns:
        True if a file was removed
    """
    if not path:
        return False
    try:
        os.remove(path)
        logger.debug(f"Cleaned up temporary file: {path}")
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Failed to cleanup temp file {path}: {e}")
        return False


class TempFileInfo:
    """An uploaded file stored on disk for the lifetime of one request."""

    def __init__(self, path: str, original_filename: str, content_type: Optional[str] = None):
        self.path = path
        self.original_filename = original_filename
        self.content_type = content_type

    @property
    def extension(self) -> str:
        """Lower-cased extension of the original filename, including the dot."""
        return Path(self.original_filename).suffix.lower()

    @property
    def size(self) -> int:
        try:
            return os.path.getsize(self.path)
        except OSError:
            return 0

    def __str__(self):
        return f"TempFileInfo(path={self.path}, original={self.original_filename})"

    def __repr__(self):
        return self.__str__()


class TempFileManager:
    """
    Owns every file a single request creates under the upload directory.

    The manager creates a private work directory for the request; converter
    output lands there, so directory scans never see another request's files.
    Use as an async context manager to guarantee cleanup.
    """

    def __init__(self, base_dir: Union[str, Path], prefix: str = "job"):
        self.base_dir = Path(base_dir)
        self.token = unique_token()
        self.work_dir = self.base_dir / f"{prefix}-{self.token}"
        self.temp_files: List[str] = []

        self.base_dir.mkdir(parents=True, exist_ok=True)

    def generate_filename(self, original_filename: Optional[str] = None, prefix: str = "temp") -> str:
        """
        Generate a collision-free filename for an upload.

        Args:
            original_filename: Client filename; its sanitized stem and extension are kept
            prefix: Filename prefix

        Returns:
            ``<prefix>-<timestamp>-<hex>-<stem><ext>``
        """
        token = unique_token()
        if not original_filename:
            return f"{prefix}-{token}"
        safe = safe_filename(original_filename)
        stem, ext = os.path.splitext(safe)
        return f"{prefix}-{token}-{stem}{ext.lower()}"

    def ensure_work_dir(self) -> Path:
        self.work_dir.mkdir(parents=True, exist_ok=True)
        return self.work_dir

    async def save_upload(self, upload: UploadFile, max_bytes: int) -> TempFileInfo:
        """
        Stream an upload to a new temp file.

        Raises:
            ValidationError: If the upload exceeds ``max_bytes`` (temp file removed)
            FilesystemError: If the file can't be written
        """
        original = upload.filename or ""
        temp_path = self.ensure_work_dir() / self.generate_filename(original)
        self.temp_files.append(str(temp_path))

        size = 0
        try:
            with open(temp_path, "wb") as f_out:
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > max_bytes:
                        break
                    f_out.write(chunk)
        except OSError as e:
            delete_if_exists(temp_path)
            logger.error(f"Failed to store upload {temp_path}: {e}")
            raise FilesystemError("Failed to store uploaded file")

        if size > max_bytes:
            delete_if_exists(temp_path)
            raise ValidationError(
                f"File too large. Max {max_bytes // (1024 * 1024)} MB",
                error_code=ErrorCode.FILE_TOO_LARGE,
            )

        logger.debug(f"Stored upload {original!r} as {temp_path} ({size} bytes)")
        return TempFileInfo(path=str(temp_path), original_filename=original, content_type=upload.content_type)

    def track(self, path: Union[str, Path]) -> None:
        """Register an extra file (e.g. partial output) for cleanup."""
        self.temp_files.append(str(path))

    def cleanup_file(self, file_path: Union[str, Path]) -> None:
        """Manually cleanup a specific file."""
        delete_if_exists(file_path)
        self.temp_files = [f for f in self.temp_files if f != str(file_path)]

    def cleanup_all(self) -> None:
        """Remove every tracked file and the work directory."""
        for path in self.temp_files:
            delete_if_exists(path)
        self.temp_files.clear()
        if self.work_dir.exists():
            try:
                shutil.rmtree(self.work_dir)
            except OSError as e:
                logger.warning(f"Failed to remove work directory {self.work_dir}: {e}")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.cleanup_all()


def move_to_output(source: Union[str, Path], output_dir: Union[str, Path], extension: str) -> Path:
    """
    Move a converted file into the public output directory.

    The destination is named ``converted-<timestamp>-<hex>.<extension>``.

    Raises:
        FilesystemError: If the move fails
    """
    output_dir = Path(output_dir)
    destination = output_dir / f"converted-{unique_token()}.{extension.lstrip('.')}"
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source), str(destination))
    except OSError as e:
        delete_if_exists(destination)
        logger.error(f"Failed to move {source} to {destination}: {e}")
        raise FilesystemError("Failed to publish converted file")
    logger.debug(f"Published converted file: {destination}")
    return destination
