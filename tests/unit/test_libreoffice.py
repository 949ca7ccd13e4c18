"""
Unit tests for the LibreOffice subprocess strategy, using stand-in shell scripts.
"""

import stat
import sys
from pathlib import Path

import pytest

from sheetconvert.utils.conversion_base import ConversionJob
from sheetconvert.utils.error_handling import ConverterExecutionError, ConverterUnavailable, OutputNotFound
from sheetconvert.utils.libreoffice import LibreOfficeStrategy, build_command, find_converter

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="stand-in converters are POSIX shell scripts")

# Parses --outdir and the trailing input path the way soffice receives them
ARGS_PREAMBLE = """#!/bin/sh
outdir=""
input=""
while [ $# -gt 0 ]; do
  case "$1" in
    --outdir) outdir="$2"; shift 2 ;;
    *) input="$1"; shift ;;
  esac
done
name=$(basename "$input")
stem="${name%.*}"
"""


def make_script(directory: Path, body: str, name: str = "soffice") -> str:
    path = directory / name
    path.write_text(ARGS_PREAMBLE + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def job(tmp_path: Path) -> ConversionJob:
    work_dir = tmp_path / "job"
    work_dir.mkdir()
    input_path = work_dir / "temp-1-report.xls"
    input_path.write_bytes(b"spreadsheet")
    return ConversionJob(input_path, "xls", "xlsx", work_dir, original_filename="report.xls")


def strategy_for(executable: str, **kwargs) -> LibreOfficeStrategy:
    options = {"timeout": 10.0, "poll_interval": 0.01, "poll_attempts": 5}
    options.update(kwargs)
    return LibreOfficeStrategy(search_paths=[executable], **options)


class TestFindConverter:

    def test_known_location_wins(self, tmp_path: Path):
        executable = make_script(tmp_path, "exit 0\n")
        assert find_converter([str(tmp_path / "missing"), executable]) == executable

    def test_non_executable_file_is_skipped(self, tmp_path: Path, monkeypatch):
        plain = tmp_path / "soffice"
        plain.write_text("not executable")
        monkeypatch.setattr("sheetconvert.utils.libreoffice.shutil.which", lambda name: None)
        assert find_converter([str(plain)]) is None

    def test_falls_back_to_path(self, monkeypatch):
        monkeypatch.setattr(
            "sheetconvert.utils.libreoffice.shutil.which",
            lambda name: "/opt/bin/libreoffice" if name == "libreoffice" else None,
        )
        assert find_converter([]) == "/opt/bin/libreoffice"


class TestBuildCommand:

    def test_headless_conversion_into_job_output_dir(self, job: ConversionJob):
        cmd = build_command("/usr/bin/soffice", job)

        assert cmd[0] == "/usr/bin/soffice"
        assert "--headless" in cmd
        assert "--norestore" in cmd
        assert cmd[cmd.index("--convert-to") + 1] == "xlsx:Calc MS Excel 2007 XML"
        assert cmd[cmd.index("--outdir") + 1] == str(job.output_dir)
        assert cmd[-1] == str(job.input_path)
        assert any(arg.startswith("-env:UserInstallation=file://") for arg in cmd)

    def test_csv_filter(self, job: ConversionJob):
        job.target_format = "csv"
        cmd = build_command("soffice", job)
        assert cmd[cmd.index("--convert-to") + 1].startswith("csv:Text - txt - csv (StarCalc)")


class TestLibreOfficeStrategy:

    @pytest.mark.asyncio
    async def test_expected_output_is_returned(self, tmp_path: Path, job: ConversionJob):
        executable = make_script(tmp_path, 'printf "converted" > "$outdir/$stem.xlsx"\n')

        output = await strategy_for(executable).convert(job)

        assert output == job.expected_output
        assert output.read_bytes() == b"converted"

    @pytest.mark.asyncio
    async def test_differently_named_output_found_in_work_dir(self, tmp_path: Path, job: ConversionJob):
        executable = make_script(tmp_path, 'printf "converted" > "$outdir/Sheet1.xlsx"\n')

        output = await strategy_for(executable).convert(job)

        assert output == job.output_dir / "Sheet1.xlsx"

    @pytest.mark.asyncio
    async def test_nonzero_exit_includes_stderr(self, tmp_path: Path, job: ConversionJob):
        executable = make_script(tmp_path, 'echo "source file could not be loaded" >&2\nexit 3\n')

        with pytest.raises(ConverterExecutionError) as excinfo:
            await strategy_for(executable).convert(job)

        assert "return code 3" in excinfo.value.message
        assert "source file could not be loaded" in excinfo.value.message
        assert excinfo.value.details["returncode"] == 3

    @pytest.mark.asyncio
    async def test_missing_output(self, tmp_path: Path, job: ConversionJob):
        executable = make_script(tmp_path, "exit 0\n")

        with pytest.raises(OutputNotFound):
            await strategy_for(executable).convert(job)

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tmp_path: Path, job: ConversionJob):
        executable = make_script(tmp_path, "exec sleep 5\n")

        with pytest.raises(ConverterExecutionError) as excinfo:
            await strategy_for(executable, timeout=0.2).convert(job)

        assert "timed out" in excinfo.value.message

    @pytest.mark.asyncio
    async def test_not_installed(self, job: ConversionJob, monkeypatch):
        monkeypatch.setattr("sheetconvert.utils.libreoffice.shutil.which", lambda name: None)
        strategy = LibreOfficeStrategy(search_paths=[])

        with pytest.raises(ConverterUnavailable):
            await strategy.convert(job)

        assert await strategy.status() == {"available": False, "path": None}

    @pytest.mark.asyncio
    async def test_unstartable_binary_is_unavailable(self, tmp_path: Path, job: ConversionJob):
        broken = tmp_path / "soffice"
        broken.write_text("#!/nonexistent/interpreter\n")
        broken.chmod(0o755)

        with pytest.raises(ConverterUnavailable):
            await strategy_for(str(broken)).convert(job)

    @pytest.mark.asyncio
    async def test_status_reports_path(self, tmp_path: Path):
        executable = make_script(tmp_path, "exit 0\n")
        assert await strategy_for(executable).status() == {"available": True, "path": executable}
