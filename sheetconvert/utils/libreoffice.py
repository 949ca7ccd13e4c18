"""
External-process conversion through a local LibreOffice installation.

The ``soffice`` binary is located by probing known install locations, then
run headless as an asyncio subprocess so the event loop keeps serving other
requests while it works.
"""

import asyncio
import os
import shutil
from pathlib import Path
from typing import Dict, Any, List, Optional

from ..config import CONVERTER_EXECUTABLE_NAMES, TARGET_FORMATS, ConversionStrategyName
from .conversion_base import ConversionJob, ConversionStrategy, newest_with_extension, wait_for_output
from .error_handling import ConverterExecutionError, ConverterUnavailable, OutputNotFound
from .logging_config import get_logger, log_performance

logger = get_logger()

# Keep stderr excerpts in error details short
STDERR_LIMIT = 500


def find_converter(search_paths: List[str]) -> Optional[str]:
    """
    Locate the LibreOffice executable.

    Args:
        search_paths: Absolute install locations probed in order

    Returns:
        Path to the executable, or None if not installed
    """
    for path in search_paths:
        if os.path.isfile(path) and os.access(path, os.X_OK):
            return path

    for name in CONVERTER_EXECUTABLE_NAMES:
        resolved = shutil.which(name)
        if resolved:
            return resolved

    return None


def build_command(executable: str, job: ConversionJob) -> List[str]:
    """Command line for a headless conversion of ``job``."""
    convert_to, _media_type = TARGET_FORMATS[job.target_format]
    # Private profile so parallel soffice runs don't share one user directory
    profile_dir = (job.work_dir / "profile").resolve()
    return [
        executable,
        f"-env:UserInstallation={profile_dir.as_uri()}",
        "--headless",
        "--norestore",
        "--nolockcheck",
        "--convert-to", convert_to,
        "--outdir", str(job.output_dir),
        str(job.input_path),
    ]


class LibreOfficeStrategy(ConversionStrategy):
    """Converts with ``soffice --headless --convert-to``."""

    name = ConversionStrategyName.LIBREOFFICE

    def __init__(
        self,
        search_paths: List[str],
        timeout: float = 120.0,
        poll_interval: float = 0.25,
        poll_attempts: int = 20,
    ):
        self.search_paths = search_paths
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts

    def locate(self) -> Optional[str]:
        return find_converter(self.search_paths)

    async def status(self) -> Dict[str, Any]:
        path = self.locate()
        return {"available": path is not None, "path": path}

    @log_performance(logger)
    async def convert(self, job: ConversionJob) -> Path:
        executable = self.locate()
        if executable is None:
            raise ConverterUnavailable("LibreOffice executable not found")

        job.output_dir.mkdir(parents=True, exist_ok=True)
        cmd = build_command(executable, job)
        logger.info(f"Executing command: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to start LibreOffice: {e}")
            raise ConverterUnavailable(f"LibreOffice could not be started: {e.strerror or e}")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ConverterExecutionError(f"LibreOffice timed out after {self.timeout:g}s")

        stdout_text = stdout.decode(errors="replace").strip()
        stderr_text = stderr.decode(errors="replace").strip()
        if stdout_text:
            logger.debug(f"LibreOffice stdout: {stdout_text}")

        if process.returncode != 0:
            error_msg = f"LibreOffice failed with return code {process.returncode}"
            if stderr_text:
                error_msg += f". stderr: {stderr_text[:STDERR_LIMIT]}"
            raise ConverterExecutionError(error_msg, details={"returncode": process.returncode})

        if stderr_text:
            logger.warning(f"LibreOffice stderr: {stderr_text[:STDERR_LIMIT]}")

        output = await wait_for_output(
            lambda: self._locate_output(job),
            interval=self.poll_interval,
            attempts=self.poll_attempts,
        )
        if output is None:
            raise OutputNotFound("Converted file not found after LibreOffice finished")
        return output

    @staticmethod
    def _locate_output(job: ConversionJob) -> Optional[Path]:
        """The expected name first, then any file of the target type in the job's own output dir."""
        if job.expected_output.exists():
            return job.expected_output
        return newest_with_extension(job.output_dir, job.target_format, exclude=[job.input_path])
