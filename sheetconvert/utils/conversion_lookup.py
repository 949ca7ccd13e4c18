"""
Conversion lookup utilities for the /upload endpoint.

This module builds the ordered list of conversion strategies for the
configured deployment variant and describes the supported conversions.
"""

from typing import Dict, Any, List, Optional

from ..config import TARGET_FORMATS, ConversionStrategyName, ServiceConfig
from .conversion_base import ConversionStrategy
from .http_client import HTTPClientFactory
from .libreoffice import LibreOfficeStrategy
from .remote_api import RemoteAPIStrategy


def create_strategy(
    name: ConversionStrategyName,
    config: ServiceConfig,
    http_factory: Optional[HTTPClientFactory] = None,
) -> ConversionStrategy:
    """
    Instantiate one strategy from the configuration.

    Args:
        name: Strategy to create
        config: Service configuration
        http_factory: HTTP client factory for the remote API strategy

    Returns:
        A ConversionStrategy instance
    """
    if name == ConversionStrategyName.LIBREOFFICE:
        return LibreOfficeStrategy(
            search_paths=config.converter_search_paths,
            timeout=config.converter_timeout,
            poll_interval=config.poll_interval,
            poll_attempts=config.poll_attempts,
        )
    if name == ConversionStrategyName.REMOTE_API:
        return RemoteAPIStrategy(
            base_url=config.remote_api_base_url,
            secret=config.remote_api_secret,
            timeout=config.remote_api_timeout,
            http_factory=http_factory,
        )
    if name == ConversionStrategyName.LIBRARY:
        # pandas is only imported when the fallback is actually configured
        from .._local_ import LibraryStrategy
        return LibraryStrategy()
    raise ValueError(f"Unknown conversion strategy: {name}")


def build_strategies(
    config: ServiceConfig,
    http_factory: Optional[HTTPClientFactory] = None,
) -> List[ConversionStrategy]:
    """Strategies in the configured priority order."""
    return [create_strategy(name, config, http_factory) for name in config.strategy_order]


def get_supported_conversions(config: ServiceConfig) -> Dict[str, Any]:
    """
    Get the accepted input formats and the conversions available for them.

    Returns:
        Dictionary with input formats, MIME types, target formats and strategy order
    """
    inputs = sorted(ext.lstrip(".") for ext in config.allowed_extensions)
    return {
        "input_formats": inputs,
        "input_mime_types": sorted(config.allowed_mime_types),
        "output_formats": sorted(TARGET_FORMATS),
        "default_output_format": config.default_target_format,
        "conversions": {fmt: sorted(TARGET_FORMATS) for fmt in inputs},
        "strategies": [name.value for name in config.strategy_order],
        "variant": config.variant.value,
    }
