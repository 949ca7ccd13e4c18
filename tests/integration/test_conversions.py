"""
Integration tests running real conversions through the /upload endpoint.

LibreOffice tests are skipped when no soffice binary is installed; the
library and remote API variants run everywhere.
"""

import base64
import csv
import io
import re
import subprocess
from pathlib import Path

import httpx
import openpyxl
import pytest
from fastapi.testclient import TestClient

from app import create_app
from conftest import XLS_MIME, XLSX_MIME, build_workbook_bytes, build_xls_bytes, leftover_files
from sheetconvert.config import DEFAULT_CONVERTER_SEARCH_PATHS, DeploymentVariant, ServiceConfig
from sheetconvert.utils.http_client import HTTPClientFactory, ServiceType
from sheetconvert.utils.libreoffice import find_converter

SOFFICE = find_converter(DEFAULT_CONVERTER_SEARCH_PATHS)

requires_libreoffice = pytest.mark.skipif(SOFFICE is None, reason="LibreOffice is not installed")

pytestmark = pytest.mark.integration


def integration_config(tmp_path: Path, **overrides) -> ServiceConfig:
    options = dict(
        upload_dir=tmp_path / "uploads",
        output_dir=tmp_path / "downloads",
        converter_timeout=120.0,
        poll_interval=0.25,
        poll_attempts=20,
    )
    options.update(overrides)
    return ServiceConfig(**options)


def download(client: TestClient, response) -> bytes:
    assert response.status_code == 200, response.text
    fetched = client.get(response.json()["download_url"])
    assert fetched.status_code == 200
    return fetched.content


@pytest.fixture
def legacy_xls(tmp_path: Path) -> bytes:
    """A real .xls workbook, produced by LibreOffice from a generated .xlsx."""
    source = tmp_path / "fixture" / "report.xlsx"
    source.parent.mkdir(parents=True)
    source.write_bytes(build_workbook_bytes())
    subprocess.run(
        [SOFFICE, f"-env:UserInstallation={(tmp_path / 'profile').as_uri()}", "--headless",
         "--convert-to", "xls", "--outdir", str(source.parent), str(source)],
        check=True,
        capture_output=True,
        timeout=120,
    )
    return (source.parent / "report.xls").read_bytes()


@requires_libreoffice
class TestLibreOfficeConversions:

    def test_xls_to_xlsx(self, tmp_path: Path, legacy_xls: bytes):
        config = integration_config(tmp_path)
        with TestClient(create_app(config)) as client:
            response = client.post("/upload", files={"file": ("report.xls", legacy_xls, XLS_MIME)})

            assert re.match(r"^/downloads/converted-\d+-[0-9a-f]{8}\.xlsx$", response.json()["download_url"])
            workbook = openpyxl.load_workbook(io.BytesIO(download(client, response)))

        rows = list(workbook.active.iter_rows(values_only=True))
        assert rows[0] == ("name", "qty")
        assert leftover_files(config.upload_dir) == []

    def test_xlsx_to_csv(self, tmp_path: Path):
        config = integration_config(tmp_path)
        with TestClient(create_app(config)) as client:
            response = client.post(
                "/upload",
                files={"file": ("report.xlsx", build_workbook_bytes(), XLSX_MIME)},
                data={"format": "csv"},
            )
            content = download(client, response).decode("utf-8")

        assert list(csv.reader(io.StringIO(content)))[1] == ["widget", "3"]

    def test_xlsx_to_xlsx_does_not_overwrite_input(self, tmp_path: Path):
        config = integration_config(tmp_path)
        with TestClient(create_app(config)) as client:
            response = client.post("/upload", files={"file": ("report.xlsx", build_workbook_bytes(), XLSX_MIME)})
            workbook = openpyxl.load_workbook(io.BytesIO(download(client, response)))

        assert workbook.sheetnames == ["Report"]

    def test_health_finds_converter(self, tmp_path: Path):
        with TestClient(create_app(integration_config(tmp_path))) as client:
            data = client.get("/health").json()
        assert data["converter"]["found"] is True


class TestLibraryFallback:

    def test_hybrid_falls_back_to_library(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr("sheetconvert.utils.libreoffice.shutil.which", lambda name: None)
        config = integration_config(tmp_path, variant=DeploymentVariant.HYBRID, converter_search_paths=[])

        with TestClient(create_app(config)) as client:
            response = client.post("/upload", files={"file": ("report.xlsx", build_workbook_bytes(), XLSX_MIME)})
            workbook = openpyxl.load_workbook(io.BytesIO(download(client, response)))

        assert list(workbook["Report"].iter_rows(values_only=True))[2] == ("gadget", 5)
        assert leftover_files(config.upload_dir) == []

    def test_hybrid_converts_legacy_xls_without_libreoffice(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr("sheetconvert.utils.libreoffice.shutil.which", lambda name: None)
        config = integration_config(tmp_path, variant=DeploymentVariant.HYBRID, converter_search_paths=[])

        with TestClient(create_app(config)) as client:
            response = client.post("/upload", files={"file": ("report.xls", build_xls_bytes(), XLS_MIME)})
            workbook = openpyxl.load_workbook(io.BytesIO(download(client, response)))

        assert list(workbook["Report"].iter_rows(values_only=True)) == [("name", "qty"), ("widget", 3), ("gadget", 5)]
        assert leftover_files(config.upload_dir) == []

    def test_local_variant_without_libreoffice_fails(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr("sheetconvert.utils.libreoffice.shutil.which", lambda name: None)
        config = integration_config(tmp_path, converter_search_paths=[])

        with TestClient(create_app(config)) as client:
            response = client.post("/upload", files={"file": ("report.xlsx", build_workbook_bytes(), XLSX_MIME)})

        assert response.status_code == 500
        assert response.json()["error"] == "CONVERTER_UNAVAILABLE"
        assert leftover_files(config.upload_dir) == []


class TestRemoteVariant:

    def test_remote_api_round_trip(self, tmp_path: Path):
        converted = build_workbook_bytes({"Converted": [["ok"]]})

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/convert/xls/to/xlsx"
            return httpx.Response(200, json={"Files": [{"FileData": base64.b64encode(converted).decode()}]})

        factory = HTTPClientFactory()
        factory.create_client(ServiceType.REMOTE_API, transport=httpx.MockTransport(handler))
        config = integration_config(
            tmp_path,
            variant=DeploymentVariant.REMOTE,
            remote_api_base_url="https://api.example.test",
            remote_api_secret="s3cret",
        )

        with TestClient(create_app(config, http_factory=factory)) as client:
            response = client.post("/upload", files={"file": ("report.xls", b"legacy bytes", XLS_MIME)})
            assert download(client, response) == converted
