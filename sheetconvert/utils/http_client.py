"""
Centralized HTTP client factory for the remote conversion API.

This module provides a unified way to create and manage HTTP clients with
consistent timeout and connection pooling configurations.
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import Optional, Dict
from enum import Enum

import httpx

logger = logging.getLogger(__name__)


class ServiceType(Enum):
    """Service types for HTTP client configuration."""
    REMOTE_API = "remote_api"


class HTTPClientFactory:
    """
    Creates and owns the service's outbound HTTP clients.

    Clients are cached per service type and closed together at shutdown.
    """

    def __init__(self):
        self._clients: Dict[ServiceType, httpx.AsyncClient] = {}
        self._limits = None

    def _get_connection_limits(self) -> httpx.Limits:
        if self._limits is None:
            self._limits = httpx.Limits(
                max_keepalive_connections=10,
                max_connections=50,
                keepalive_expiry=30.0
            )
        return self._limits

    def _get_timeout(self, read: Optional[float] = None) -> httpx.Timeout:
        """Timeouts; ``read`` defaults to SHEETCONVERT_HTTP_TIMEOUT, unset means none."""
        if read is None:
            http_timeout_str = os.getenv('SHEETCONVERT_HTTP_TIMEOUT', '')
            read = float(http_timeout_str) if http_timeout_str.strip() else None
        return httpx.Timeout(connect=10.0, read=read, write=300.0, pool=10.0)

    def create_client(
        self,
        service_type: ServiceType = ServiceType.REMOTE_API,
        read_timeout: Optional[float] = None,
        **overrides
    ) -> httpx.AsyncClient:
        """
        Create an HTTP client for a service type.

        Args:
            service_type: Type of service the client will be used for
            read_timeout: Read timeout in seconds
            **overrides: Override default client configuration (e.g. ``transport``)

        Returns:
            Configured AsyncClient instance
        """
        config = {
            'timeout': self._get_timeout(read_timeout),
            'limits': self._get_connection_limits(),
            # Remote API result URLs may redirect to storage
            'follow_redirects': True,
        }
        config.update(overrides)

        client = httpx.AsyncClient(**config)
        self._clients[service_type] = client
        return client

    def get_client(self, service_type: ServiceType) -> Optional[httpx.AsyncClient]:
        """Get an existing, still open client for a service type."""
        client = self._clients.get(service_type)
        if client is not None and client.is_closed:
            return None
        return client

    def get_or_create_client(self, service_type: ServiceType, read_timeout: Optional[float] = None) -> httpx.AsyncClient:
        client = self.get_client(service_type)
        if client is None:
            client = self.create_client(service_type, read_timeout=read_timeout)
        return client

    async def close_all_clients(self):
        """Close all managed clients."""
        for client in self._clients.values():
            try:
                await client.aclose()
            except (httpx.HTTPError, RuntimeError) as e:
                logger.warning(f"Error closing HTTP client: {e}")

        self._clients.clear()


# Global factory instance
_http_factory = HTTPClientFactory()


def get_http_client_factory() -> HTTPClientFactory:
    """Get the global HTTP client factory instance."""
    return _http_factory


@asynccontextmanager
async def lifespan_http_clients(factory: Optional[HTTPClientFactory] = None):
    """
    Context manager for HTTP client lifecycle management.

    Use this in FastAPI lifespan events to ensure proper client cleanup.
    """
    factory = factory or _http_factory
    try:
        yield factory
    finally:
        await factory.close_all_clients()
