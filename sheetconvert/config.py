"""
Conversion configuration for the /upload endpoint.

This module defines the accepted spreadsheet formats, the conversion
strategies and their order per deployment variant, and the explicit
``ServiceConfig`` object handed to the conversion pipeline.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple


class ConversionStrategyName(Enum):
    """Available conversion strategies."""
    LIBREOFFICE = "libreoffice"
    REMOTE_API = "remote_api"
    LIBRARY = "library"


class DeploymentVariant(Enum):
    """Deployment variants and the strategy order each one uses."""
    LOCAL = "local"
    HYBRID = "hybrid"
    REMOTE = "remote"


VARIANT_STRATEGIES: Dict[DeploymentVariant, List[ConversionStrategyName]] = {
    DeploymentVariant.LOCAL: [ConversionStrategyName.LIBREOFFICE],
    DeploymentVariant.HYBRID: [
        ConversionStrategyName.LIBREOFFICE,
        ConversionStrategyName.LIBRARY,
    ],
    DeploymentVariant.REMOTE: [ConversionStrategyName.REMOTE_API],
}


# Input formats accepted by the upload validator
ALLOWED_EXTENSIONS = {".xls", ".xlsx"}

ALLOWED_MIME_TYPES = {
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

# Output formats: extension -> (LibreOffice --convert-to argument, media type)
TARGET_FORMATS: Dict[str, Tuple[str, str]] = {
    "xlsx": (
        "xlsx:Calc MS Excel 2007 XML",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ),
    "csv": (
        "csv:Text - txt - csv (StarCalc):44,34,76,1",
        "text/csv",
    ),
}

DEFAULT_TARGET_FORMAT = "xlsx"

# Known soffice install locations, probed in order before PATH
DEFAULT_CONVERTER_SEARCH_PATHS = [
    r"C:\Program Files\LibreOffice\program\soffice.exe",
    r"C:\Program Files (x86)\LibreOffice\program\soffice.exe",
    "/Applications/LibreOffice.app/Contents/MacOS/soffice",
    "/usr/bin/soffice",
    "/usr/bin/libreoffice",
    "/usr/local/bin/soffice",
    "/usr/lib/libreoffice/program/soffice",
    "/opt/libreoffice/program/soffice",
    "/snap/bin/libreoffice",
]

# Executable names looked up on PATH when no known location matches
CONVERTER_EXECUTABLE_NAMES = ["soffice", "libreoffice"]

DEFAULT_REMOTE_API_BASE_URL = "https://v2.convertapi.com"

ENV_PREFIX = "SHEETCONVERT_"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _env_list(name: str, sep: str = ",") -> Optional[List[str]]:
    raw = _env(name)
    if raw is None or not raw.strip():
        return None
    return [item.strip() for item in raw.split(sep) if item.strip()]


class ServiceConfig:
    """Explicit configuration for the conversion pipeline.

    One instance is built at startup and passed to the orchestrator; nothing
    in the pipeline reads module-level directory constants or credentials.
    """

    def __init__(
        self,
        upload_dir: Path = Path("uploads"),
        output_dir: Path = Path("downloads"),
        allowed_extensions: Optional[set] = None,
        allowed_mime_types: Optional[set] = None,
        default_target_format: str = DEFAULT_TARGET_FORMAT,
        max_upload_mb: int = 50,
        converter_search_paths: Optional[List[str]] = None,
        converter_timeout: float = 120.0,
        poll_interval: float = 0.25,
        poll_attempts: int = 20,
        variant: DeploymentVariant = DeploymentVariant.LOCAL,
        strategy_order: Optional[List[ConversionStrategyName]] = None,
        remote_api_base_url: str = DEFAULT_REMOTE_API_BASE_URL,
        remote_api_secret: Optional[str] = None,
        remote_api_timeout: float = 120.0,
        public_download_prefix: str = "/downloads",
    ):
        self.upload_dir = Path(upload_dir).resolve()
        self.output_dir = Path(output_dir).resolve()
        self.allowed_extensions = {
            ext.lower() if ext.startswith(".") else f".{ext.lower()}"
            for ext in (allowed_extensions or ALLOWED_EXTENSIONS)
        }
        self.allowed_mime_types = set(allowed_mime_types or ALLOWED_MIME_TYPES)
        if default_target_format not in TARGET_FORMATS:
            raise ValueError(f"Unsupported default target format: {default_target_format}")
        self.default_target_format = default_target_format
        self.max_upload_mb = max_upload_mb
        self.converter_search_paths = list(
            DEFAULT_CONVERTER_SEARCH_PATHS if converter_search_paths is None else converter_search_paths
        )
        self.converter_timeout = converter_timeout
        self.poll_interval = poll_interval
        self.poll_attempts = max(1, poll_attempts)
        self.variant = variant
        self.strategy_order = list(strategy_order or VARIANT_STRATEGIES[variant])
        self.remote_api_base_url = remote_api_base_url.rstrip("/")
        self.remote_api_secret = remote_api_secret
        self.remote_api_timeout = remote_api_timeout
        self.public_download_prefix = "/" + public_download_prefix.strip("/")

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """Create configuration from ``SHEETCONVERT_*`` environment variables."""
        variant = DeploymentVariant(_env("VARIANT", DeploymentVariant.LOCAL.value).lower())

        strategy_names = _env_list("STRATEGIES")
        strategy_order = (
            [ConversionStrategyName(name.lower()) for name in strategy_names]
            if strategy_names else None
        )

        extensions = _env_list("ALLOWED_EXTENSIONS")
        mime_types = _env_list("ALLOWED_MIME_TYPES")

        return cls(
            upload_dir=Path(_env("UPLOAD_DIR", "uploads")),
            output_dir=Path(_env("OUTPUT_DIR", "downloads")),
            allowed_extensions=set(extensions) if extensions else None,
            allowed_mime_types=set(mime_types) if mime_types else None,
            default_target_format=_env("TARGET_FORMAT", DEFAULT_TARGET_FORMAT).lower(),
            max_upload_mb=int(_env("MAX_UPLOAD_MB", "50")),
            converter_search_paths=_env_list("CONVERTER_PATHS", os.pathsep),
            converter_timeout=float(_env("CONVERTER_TIMEOUT", "120")),
            poll_interval=float(_env("POLL_INTERVAL", "0.25")),
            poll_attempts=int(_env("POLL_ATTEMPTS", "20")),
            variant=variant,
            strategy_order=strategy_order,
            remote_api_base_url=_env("REMOTE_API_URL", DEFAULT_REMOTE_API_BASE_URL),
            remote_api_secret=_env("REMOTE_API_SECRET"),
            remote_api_timeout=float(_env("REMOTE_API_TIMEOUT", "120")),
            public_download_prefix=_env("DOWNLOAD_PREFIX", "/downloads"),
        )

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    def ensure_directories(self) -> None:
        """Create the upload and output directories if missing."""
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir(parents=True, exist_ok=True)
