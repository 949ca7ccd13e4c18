"""
CSV output validation.

Validates that a converted CSV file is readable UTF-8 text.
"""

import logging

from ..base_validator import TextBasedValidator, FormatValidationError

logger = logging.getLogger(__name__)


class CSVValidator(TextBasedValidator):
    """CSV file validator using the base validation framework."""

    def __init__(self):
        super().__init__("csv")

    def _read_file_content(self, file_path):
        try:
            with open(file_path, 'r', encoding='utf-8-sig', errors='strict') as f:
                return f.read()
        except UnicodeDecodeError as e:
            raise FormatValidationError(
                f"CSV output must be valid UTF-8 encoded text: {e}",
                format_type=self.format_name,
                details={"encoding_error": str(e)}
            )
        except OSError as e:
            raise FormatValidationError(
                f"Failed to read CSV file: {e}",
                format_type=self.format_name,
                details={"read_error": str(e)}
            )

    def _validate_content(self, content: str, **options) -> bool:
        self._validate_basic_text_content(content)
        return True
