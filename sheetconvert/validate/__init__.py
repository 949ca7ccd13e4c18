"""
File validation for the conversion pipeline.

Upload validation runs before any conversion; output validation confirms a
strategy really produced the requested spreadsheet format.
"""

import logging
from pathlib import Path
from typing import Union

from .base_validator import FormatValidationError, create_validator_for_format
from .upload import UploadValidator

logger = logging.getLogger(__name__)

__all__ = ['FormatValidationError', 'UploadValidator', 'validate_output']


def validate_output(file_path: Union[str, Path], expected_format: str, **options) -> bool:
    """
    Validate a converted file against its expected format.

    Raises:
        FormatValidationError: If validation fails
        ValueError: If format is not supported
    """
    validator = create_validator_for_format(expected_format)
    return validator.validate_file(file_path, **options)
