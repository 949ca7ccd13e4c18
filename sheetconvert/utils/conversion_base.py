"""
Core types shared by the conversion strategies and the orchestrator.

A ConversionJob lives for exactly one request; strategies receive it, write
their output inside the job's work directory and return the produced path.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Any, Iterable, List, Optional, Tuple

from ..config import ConversionStrategyName

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    """Request lifecycle states."""
    RECEIVED = "received"
    VALIDATED = "validated"
    CONVERTING = "converting"
    AWAITING_OUTPUT = "awaiting_output"
    FINALIZING = "finalizing"
    RESPONDED = "responded"
    ERRORED = "errored"


TERMINAL_STATES = {JobState.RESPONDED, JobState.ERRORED}


class ConversionJob:
    """Everything one request needs to convert its upload."""

    def __init__(
        self,
        input_path: Path,
        input_format: str,
        target_format: str,
        work_dir: Path,
        original_filename: str = "",
    ):
        self.input_path = Path(input_path)
        self.input_format = input_format
        self.target_format = target_format
        self.work_dir = Path(work_dir)
        self.output_dir = self.work_dir / "out"
        self.original_filename = original_filename
        self.strategy: Optional[ConversionStrategyName] = None
        self.actual_output: Optional[Path] = None
        self.state = JobState.RECEIVED
        self.history: List[JobState] = [JobState.RECEIVED]

    @property
    def expected_output(self) -> Path:
        """Deterministic output path: input stem with the target extension."""
        return self.output_dir / f"{self.input_path.stem}.{self.target_format}"

    def transition(self, state: JobState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Job already finished in state {self.state.value}")
        logger.debug(f"Job {self.input_path.name}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)


class ConversionResult:
    """Outcome of one request's conversion."""

    def __init__(
        self,
        success: bool,
        download_url: Optional[str] = None,
        filename: Optional[str] = None,
        attempts: Optional[List[Tuple[str, str]]] = None,
    ):
        self.success = success
        self.download_url = download_url
        self.filename = filename
        self.attempts = attempts or []

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "success": self.success,
            "message": "File converted successfully",
            "download_url": self.download_url,
            "filename": self.filename,
        }
        if self.attempts:
            data["failed_attempts"] = [
                {"strategy": name, "reason": reason} for name, reason in self.attempts
            ]
        return data


class ConversionStrategy(ABC):
    """Converts the spreadsheet at ``job.input_path`` into ``job.target_format``."""

    name: ConversionStrategyName

    @abstractmethod
    async def convert(self, job: ConversionJob) -> Path:
        """
        Produce the converted file.

        Returns:
            Path of the produced file inside ``job.output_dir``

        Raises:
            ConversionError: A subclass describing why this strategy failed
        """

    async def status(self) -> Dict[str, Any]:
        """Availability information for /health."""
        return {"available": True}


async def wait_for_output(
    locate: Callable[[], Optional[Path]],
    interval: float,
    attempts: int,
) -> Optional[Path]:
    """
    Poll until ``locate()`` returns a file whose size is stable.

    Some converters keep writing after their process has exited, so a file
    counts as ready only when two consecutive checks see the same non-zero
    size. At most ``attempts`` checks are made, ``interval`` seconds apart.

    Returns:
        The located path, or None if nothing stable appeared in time
    """
    last_seen: Optional[Tuple[Path, int]] = None
    for attempt in range(attempts):
        candidate = locate()
        if candidate is not None:
            try:
                size = candidate.stat().st_size
            except OSError:
                size = -1
            if size > 0 and last_seen == (candidate, size):
                return candidate
            last_seen = (candidate, size)
        if attempt < attempts - 1:
            await asyncio.sleep(interval)

    # A file seen on the very last check is accepted if it has content
    if last_seen is not None and last_seen[1] > 0 and last_seen[0].exists():
        return last_seen[0]
    return None


def newest_with_extension(directory: Path, extension: str, exclude: Iterable[Path] = ()) -> Optional[Path]:
    """Most recently modified file in ``directory`` with ``extension``."""
    excluded = {Path(p).resolve() for p in exclude}
    try:
        candidates = [
            entry for entry in directory.iterdir()
            if entry.is_file()
            and entry.suffix.lower() == f".{extension.lower()}"
            and entry.resolve() not in excluded
        ]
    except OSError:
        return None
    if not candidates:
        return None
    return max(candidates, key=lambda p: os.path.getmtime(p))
