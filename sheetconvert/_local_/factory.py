"""
In-process spreadsheet conversion with pandas.

Used as the fallback strategy when no external converter is available. It
keeps cell values only; formatting, formulas and charts are not carried over.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Dict

import pandas as pd

from ..config import ConversionStrategyName
from ..utils.conversion_base import ConversionJob, ConversionStrategy
from ..utils.error_handling import ConverterExecutionError, ConverterUnavailable
from ..utils.logging_config import log_performance

logger = logging.getLogger(__name__)

# pandas reader engine per input format
READ_ENGINES = {
    'xls': 'xlrd',
    'xlsx': 'openpyxl',
}

# Excel limits sheet names to 31 characters
MAX_SHEET_NAME = 31


class LibraryStrategy(ConversionStrategy):
    """
    Converts spreadsheets by reading them with pandas and writing them back out.

    ``.xls`` files are read with xlrd and ``.xlsx`` files with openpyxl. Every
    sheet is kept for xlsx output; csv output holds the first sheet only.
    """

    name = ConversionStrategyName.LIBRARY

    def __init__(self):
        self._writers: Dict[str, Callable[[Dict[str, pd.DataFrame], Path], None]] = {
            'xlsx': self._write_xlsx,
            'csv': self._write_csv,
        }

    @log_performance(logger)
    async def convert(self, job: ConversionJob) -> Path:
        # pandas is blocking; keep it off the event loop
        return await asyncio.to_thread(self.convert_sync, job)

    def convert_sync(self, job: ConversionJob) -> Path:
        """
        Convert ``job`` synchronously.

        Raises:
            ConverterUnavailable: If the input format has no reader engine
            ConverterExecutionError: If reading or writing fails
        """
        writer = self._writers.get(job.target_format)
        if writer is None:
            raise ConverterUnavailable(f"Library conversion cannot produce {job.target_format}")

        sheets = self._read_workbook(job.input_path, job.input_format)

        job.output_dir.mkdir(parents=True, exist_ok=True)
        output = job.expected_output
        try:
            writer(sheets, output)
        except Exception as e:
            logger.error(f"Library conversion write error: {e}")
            raise ConverterExecutionError(f"Failed to write {job.target_format} output: {e}")
        return output

    def _read_workbook(self, file_path: Path, input_format: str) -> Dict[str, pd.DataFrame]:
        """
        Read every sheet of a workbook.

        Returns:
            Mapping of sheet name to DataFrame, in workbook order

        Raises:
            ConverterUnavailable: If there is no engine for the format or it isn't installed
            ConverterExecutionError: If the file can't be parsed
        """
        engine = READ_ENGINES.get(input_format)
        if engine is None:
            raise ConverterUnavailable(f"No spreadsheet reader for .{input_format} files")

        try:
            sheets = pd.read_excel(file_path, sheet_name=None, header=None, engine=engine)
        except ImportError as e:
            # Optional engines raise ImportError when the package is missing
            raise ConverterUnavailable(
                f"{input_format.upper()} support requires the '{engine}' package: {e}"
            )
        except Exception as e:
            logger.error(f"Error reading spreadsheet file: {e}")
            raise ConverterExecutionError(f"Failed to read spreadsheet file: {e}")

        if not sheets:
            raise ConverterExecutionError("Spreadsheet contains no sheets")
        return sheets

    @staticmethod
    def _write_xlsx(sheets: Dict[str, pd.DataFrame], output: Path) -> None:
        with pd.ExcelWriter(output, engine='openpyxl') as writer:
            for index, (sheet_name, df) in enumerate(sheets.items()):
                name = str(sheet_name)[:MAX_SHEET_NAME] or f"Sheet{index + 1}"
                df.to_excel(writer, sheet_name=name, header=False, index=False)

    @staticmethod
    def _write_csv(sheets: Dict[str, pd.DataFrame], output: Path) -> None:
        first = next(iter(sheets.values()))
        first.to_csv(output, header=False, index=False, encoding='utf-8')
