"""
Shared test configuration and fixtures for sheetconvert tests.
"""

import io
from pathlib import Path
from typing import Callable, List, Optional

import openpyxl
import pytest
import xlwt
from fastapi.testclient import TestClient

from app import create_app
from sheetconvert.config import ConversionStrategyName, ServiceConfig
from sheetconvert.utils.conversion_base import ConversionJob, ConversionStrategy
from sheetconvert.utils.error_handling import ConversionError


XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLS_MIME = "application/vnd.ms-excel"


# ===== SPREADSHEET FACTORIES =====

def build_workbook_bytes(sheets: Optional[dict] = None) -> bytes:
    """Create an .xlsx workbook in memory; ``sheets`` maps sheet name to rows."""
    sheets = sheets or {"Report": [["name", "qty"], ["widget", 3], ["gadget", 5]]}
    workbook = openpyxl.Workbook()
    workbook.remove(workbook.active)
    for title, rows in sheets.items():
        sheet = workbook.create_sheet(title)
        for row in rows:
            sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def build_xls_bytes(sheets: Optional[dict] = None) -> bytes:
    """Create a legacy .xls workbook in memory; ``sheets`` maps sheet name to rows."""
    sheets = sheets or {"Report": [["name", "qty"], ["widget", 3], ["gadget", 5]]}
    workbook = xlwt.Workbook()
    for title, rows in sheets.items():
        sheet = workbook.add_sheet(title)
        for r, row in enumerate(rows):
            for c, value in enumerate(row):
                sheet.write(r, c, value)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def write_output(job: ConversionJob) -> Path:
    """Write a valid file of the job's target format at its expected path."""
    job.output_dir.mkdir(parents=True, exist_ok=True)
    if job.target_format == "csv":
        job.expected_output.write_text("name,qty\nwidget,3\n", encoding="utf-8")
    else:
        job.expected_output.write_bytes(build_workbook_bytes())
    return job.expected_output


# ===== FAKE STRATEGIES =====

class FakeStrategy(ConversionStrategy):
    """Strategy double that either writes a valid output or raises ``error``."""

    def __init__(
        self,
        name: ConversionStrategyName = ConversionStrategyName.LIBREOFFICE,
        error: Optional[Exception] = None,
        produce: Optional[Callable[[ConversionJob], Path]] = None,
    ):
        self.name = name
        self.error = error
        self.produce = produce or write_output
        self.jobs: List[ConversionJob] = []

    async def convert(self, job: ConversionJob) -> Path:
        self.jobs.append(job)
        if self.error is not None:
            raise self.error
        return self.produce(job)

    async def status(self):
        return {"available": self.error is None, "path": None}


# ===== STANDARD FIXTURES =====

@pytest.fixture
def service_config(tmp_path: Path) -> ServiceConfig:
    """Configuration rooted in a temporary directory, with fast polling."""
    return ServiceConfig(
        upload_dir=tmp_path / "uploads",
        output_dir=tmp_path / "downloads",
        converter_search_paths=[],
        poll_interval=0.01,
        poll_attempts=5,
    )


@pytest.fixture
def make_client(service_config: ServiceConfig):
    """Factory fixture: a TestClient for an app running the given strategies."""
    clients = []

    def _make(strategies: Optional[List[ConversionStrategy]] = None, config: Optional[ServiceConfig] = None,
              raise_server_exceptions: bool = True) -> TestClient:
        app = create_app(
            config=config or service_config,
            strategies=[FakeStrategy()] if strategies is None else strategies,
        )
        client = TestClient(app, raise_server_exceptions=raise_server_exceptions)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client) -> TestClient:
    """FastAPI test client backed by one succeeding fake strategy."""
    return make_client()


@pytest.fixture
def workbook_bytes() -> bytes:
    return build_workbook_bytes()


@pytest.fixture
def xls_bytes() -> bytes:
    return build_xls_bytes()


@pytest.fixture
def workbook_file(tmp_path: Path, workbook_bytes: bytes) -> Path:
    """A two-sheet .xlsx file on disk."""
    path = tmp_path / "inputs" / "report.xlsx"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(build_workbook_bytes({
        "Report": [["name", "qty"], ["widget", 3], ["gadget", 5]],
        "Notes": [["comment"], ["checked"]],
    }))
    return path


def leftover_files(directory: Path) -> List[Path]:
    """Every file still present under ``directory``."""
    if not directory.exists():
        return []
    return [p for p in directory.rglob("*") if p.is_file()]


def failing(name: ConversionStrategyName, error: ConversionError) -> FakeStrategy:
    return FakeStrategy(name=name, error=error)
