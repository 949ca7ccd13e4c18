"""
Conversion through a hosted conversion API.

The API follows the ConvertAPI request shape: the spreadsheet is posted as
multipart form data to ``{base_url}/convert/{src}/to/{dst}`` with a bearer
secret, and the response lists the produced files either inline
(base64 ``FileData``) or as a download ``Url``.
"""

import base64
import binascii
from pathlib import Path
from typing import Dict, Any, Optional

import httpx

from ..config import TARGET_FORMATS, ConversionStrategyName
from .conversion_base import ConversionJob, ConversionStrategy
from .error_handling import ConverterUnavailable, RemoteServiceError
from .http_client import HTTPClientFactory, ServiceType, get_http_client_factory
from .logging_config import get_logger, log_performance
from .mime_detector import get_mime_type

logger = get_logger()


class RemoteAPIStrategy(ConversionStrategy):
    """Uploads the spreadsheet to the remote API and stores the returned file."""

    name = ConversionStrategyName.REMOTE_API

    def __init__(
        self,
        base_url: str,
        secret: Optional[str],
        timeout: float = 120.0,
        http_factory: Optional[HTTPClientFactory] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.secret = secret
        self.timeout = timeout
        self.http_factory = http_factory or get_http_client_factory()

    def _client(self) -> httpx.AsyncClient:
        return self.http_factory.get_or_create_client(ServiceType.REMOTE_API, read_timeout=self.timeout)

    def endpoint(self, job: ConversionJob) -> str:
        return f"{self.base_url}/convert/{job.input_format}/to/{job.target_format}"

    async def status(self) -> Dict[str, Any]:
        return {"available": bool(self.secret), "endpoint": self.base_url}

    @log_performance(logger)
    async def convert(self, job: ConversionJob) -> Path:
        if not self.secret:
            raise ConverterUnavailable("Remote conversion API secret is not configured")

        try:
            content = job.input_path.read_bytes()
        except OSError as e:
            raise RemoteServiceError(f"Could not read upload for remote conversion: {e.strerror or e}")

        upload_name = job.original_filename or job.input_path.name
        files = {"File": (upload_name, content, get_mime_type(job.input_format))}
        headers = {"Authorization": f"Bearer {self.secret}"}

        url = self.endpoint(job)
        logger.info(f"Submitting {upload_name} to remote API: {url}")
        try:
            response = await self._client().post(
                url,
                files=files,
                data={"StoreFile": "false"},
                headers=headers,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise RemoteServiceError(f"Remote API request failed: {type(e).__name__}")

        if response.status_code >= 400:
            raise RemoteServiceError(
                f"Remote API returned HTTP {response.status_code}: {_error_message(response)}",
                details={"status_code": response.status_code},
            )

        data = await self._extract_file_data(response)
        if not data:
            raise RemoteServiceError("Remote API returned an empty file")

        job.output_dir.mkdir(parents=True, exist_ok=True)
        output = job.expected_output
        try:
            output.write_bytes(data)
        except OSError as e:
            raise RemoteServiceError(f"Could not store remote API result: {e.strerror or e}")
        logger.debug(f"Remote API produced {len(data)} bytes of {TARGET_FORMATS[job.target_format][1]}")
        return output

    async def _extract_file_data(self, response: httpx.Response) -> bytes:
        """Decode the first result file, inline or via its download URL."""
        try:
            payload = response.json()
            result = payload["Files"][0]
        except (ValueError, KeyError, IndexError, TypeError):
            raise RemoteServiceError("Remote API returned an unexpected response")
        if not isinstance(result, dict):
            raise RemoteServiceError("Remote API returned an unexpected response")

        if result.get("FileData"):
            try:
                return base64.b64decode(result["FileData"], validate=True)
            except (binascii.Error, ValueError, TypeError):
                raise RemoteServiceError("Remote API returned undecodable file data")

        url = result.get("Url")
        if url:
            if not isinstance(url, str):
                raise RemoteServiceError("Remote API returned an invalid result URL")
            try:
                download = await self._client().get(url)
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                raise RemoteServiceError(f"Downloading remote result failed: {type(e).__name__}")
            if download.status_code >= 400:
                raise RemoteServiceError(f"Downloading remote result returned HTTP {download.status_code}")
            return download.content

        raise RemoteServiceError("Remote API response contains no file")


def _error_message(response: httpx.Response) -> str:
    """Best-effort error text from an API error body."""
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(payload, dict):
        return str(payload.get("Message") or payload.get("message") or payload)[:200]
    return str(payload)[:200]
