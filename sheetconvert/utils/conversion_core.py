"""
Core conversion logic for the /upload endpoint.

The orchestrator owns one request from receipt to response: it stores and
validates the upload, tries each configured strategy in order until one
produces a valid file, publishes the result and always removes the request's
temporary files.
"""

import os
import shutil
import sys
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

from fastapi import UploadFile

from ..config import TARGET_FORMATS, ConversionStrategyName, ServiceConfig
from ..validate import FormatValidationError, UploadValidator, validate_output
from .conversion_base import ConversionJob, ConversionResult, ConversionStrategy, JobState
from .error_handling import (
    AllStrategiesFailed,
    ConversionError,
    ConverterExecutionError,
    ConverterUnavailable,
    ErrorCode,
    FilesystemError,
    ValidationError,
    scrub_paths,
)
from .libreoffice import find_converter
from .logging_config import get_logger, log_performance
from .temp_file_manager import TempFileManager, move_to_output

logger = get_logger()


class ConversionOrchestrator:
    """
    Runs the upload -> validate -> convert -> publish pipeline for one request at a time.

    Holds no per-request state; every call to ``handle_upload`` gets its own
    work directory and ConversionJob, so concurrent requests never share files.
    """

    def __init__(self, config: ServiceConfig, strategies: List[ConversionStrategy]):
        self.config = config
        self.strategies = strategies
        self.validator = UploadValidator(config)

    def resolve_target_format(self, requested: Optional[str]) -> str:
        """
        Normalize the requested target format.

        Raises:
            ValidationError: If the format isn't one the service can produce
        """
        target = (requested or self.config.default_target_format).strip().lower().lstrip(".")
        if target not in TARGET_FORMATS:
            supported = ", ".join(sorted(TARGET_FORMATS))
            raise ValidationError(
                f"Unsupported target format '{target}'. Supported: {supported}",
                error_code=ErrorCode.INVALID_REQUEST,
            )
        return target

    @log_performance(logger)
    async def handle_upload(self, file: Optional[UploadFile], target_format: Optional[str] = None) -> ConversionResult:
        """
        Convert one uploaded spreadsheet and publish the result.

        Args:
            file: The multipart upload
            target_format: Requested output format, defaults to the configured one

        Returns:
            Successful ConversionResult with the public download URL

        Raises:
            ValidationError: Missing, disallowed, empty or oversized upload (4xx)
            ConversionError: Any pipeline failure; AllStrategiesFailed when several strategies failed
        """
        if file is None or not file.filename:
            raise ValidationError("No file uploaded", error_code=ErrorCode.MISSING_PARAMETER)

        target = self.resolve_target_format(target_format)

        async with TempFileManager(self.config.upload_dir) as manager:
            upload = await manager.save_upload(file, self.config.max_upload_bytes)
            job = ConversionJob(
                input_path=Path(upload.path),
                input_format="",
                target_format=target,
                work_dir=manager.work_dir,
                original_filename=upload.original_filename,
            )

            try:
                job.input_format = self.validator.validate(upload)
                job.input_path = self._ensure_extension(job.input_path, job.input_format)
                manager.track(job.input_path)
                job.transition(JobState.VALIDATED)

                output, attempts = await self._run_strategies(job)

                job.transition(JobState.FINALIZING)
                published = move_to_output(output, self.config.output_dir, target)
                manager.cleanup_file(job.input_path)
                job.transition(JobState.RESPONDED)
            except Exception:
                job.transition(JobState.ERRORED)
                raise

        download_url = f"{self.config.public_download_prefix}/{published.name}"
        logger.info(
            f"Converted {upload.original_filename!r} to {published.name} with {job.strategy.value}"
        )
        return ConversionResult(
            success=True,
            download_url=download_url,
            filename=published.name,
            attempts=attempts,
        )

    async def _run_strategies(self, job: ConversionJob) -> Tuple[Path, List[Tuple[str, str]]]:
        """
        Try each strategy in order until one produces a valid output.

        Returns:
            The produced path and the (strategy, reason) pairs of earlier failures

        Raises:
            ConversionError: The only failure when a single strategy is configured
            AllStrategiesFailed: When several strategies were tried and all failed
        """
        if not self.strategies:
            raise ConverterUnavailable("No conversion strategies configured")

        failures: List[Tuple[str, ConversionError]] = []
        for strategy in self.strategies:
            job.strategy = strategy.name
            job.transition(JobState.CONVERTING)
            logger.info(
                f"Trying strategy {strategy.name.value} for {job.input_format}→{job.target_format}"
            )
            try:
                output = await strategy.convert(job)
                job.transition(JobState.AWAITING_OUTPUT)
                self._check_output(strategy, job, output)
            except ConversionError as e:
                logger.warning(f"Strategy {strategy.name.value} failed: {e.message}")
                failures.append((strategy.name.value, e))
                self._discard_partial_output(job)
                continue
            except Exception as e:
                logger.exception(f"Strategy {strategy.name.value} raised an unexpected error")
                failures.append((
                    strategy.name.value,
                    ConverterExecutionError(f"{strategy.name.value} failed unexpectedly: {type(e).__name__}: {e}"),
                ))
                self._discard_partial_output(job)
                continue

            job.actual_output = output
            private_dirs = [self.config.upload_dir, self.config.output_dir]
            return output, [(name, scrub_paths(error.message, private_dirs)) for name, error in failures]

        if len(failures) == 1:
            raise failures[0][1]
        raise AllStrategiesFailed(failures)

    @staticmethod
    def _check_output(strategy: ConversionStrategy, job: ConversionJob, output: Path) -> None:
        """Reject output that is missing or isn't a readable file of the target format."""
        try:
            validate_output(output, job.target_format)
        except FormatValidationError as e:
            raise ConverterExecutionError(
                f"{strategy.name.value} produced an invalid {job.target_format} file: {e}"
            )

    @staticmethod
    def _ensure_extension(path: Path, input_format: str) -> Path:
        """Give an upload accepted by MIME type the extension converters expect."""
        if path.suffix.lower() == f".{input_format}":
            return path
        renamed = path.with_name(f"{path.name}.{input_format}")
        try:
            os.replace(path, renamed)
        except OSError as e:
            logger.error(f"Failed to rename upload {path}: {e}")
            raise FilesystemError("Failed to prepare uploaded file")
        return renamed

    @staticmethod
    def _discard_partial_output(job: ConversionJob) -> None:
        if not job.output_dir.exists():
            return
        try:
            shutil.rmtree(job.output_dir)
        except OSError as e:
            logger.warning(f"Failed to remove partial output for {job.input_path.name}: {e}")

    async def health(self) -> Dict[str, Any]:
        """Converter availability and strategy status for /health."""
        statuses = {}
        for strategy in self.strategies:
            statuses[strategy.name.value] = await strategy.status()

        lo_status = statuses.get(ConversionStrategyName.LIBREOFFICE.value)
        if lo_status is not None:
            converter = {"found": lo_status["available"], "path": lo_status["path"]}
        else:
            path = find_converter(self.config.converter_search_paths)
            converter = {"found": path is not None, "path": path}

        ready = any(status.get("available") for status in statuses.values())
        return {
            "status": "ok" if ready else "degraded",
            "converter": converter,
            "strategies": statuses,
            "variant": self.config.variant.value,
            "platform": sys.platform,
            "python_version": sys.version.split()[0],
        }
