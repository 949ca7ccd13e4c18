"""
XLSX output validation.

Checks the OOXML package structure of a converted workbook.
"""

import logging

from ..base_validator import ArchiveBasedValidator, FormatValidationError

logger = logging.getLogger(__name__)

WORKBOOK_CONTENT_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet.main+xml'


class XLSXValidator(ArchiveBasedValidator):
    """XLSX file validator using the base validation framework."""

    def __init__(self):
        required_files = [
            '[Content_Types].xml',
            '_rels/.rels',
            'xl/workbook.xml'
        ]
        super().__init__("xlsx", required_files)

    def _validate_content(self, content: bytes, **options) -> bool:
        """
        Validate XLSX file content.

        Raises:
            FormatValidationError: If validation fails
        """
        self._validate_basic_archive_content(content)

        content_types = self._extract_file_from_archive(content, '[Content_Types].xml')
        if content_types is not None and WORKBOOK_CONTENT_TYPE.encode() not in content_types:
            raise FormatValidationError(
                "Package is not a spreadsheet workbook",
                format_type=self.format_name,
                details={"missing_content_type": WORKBOOK_CONTENT_TYPE}
            )

        if self._extract_file_from_archive(content, 'xl/_rels/workbook.xml.rels') is None:
            self.logger.warning("Missing workbook relationships file")

        return True
