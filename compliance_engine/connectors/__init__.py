"""
Connectors Package for the Compliance Engine.

This package provides the platform connector interface, the GitHub
implementation and an in-memory mock backend.
"""

from .base_connector import (
    BaseConnector,
    ConnectorError,
    ConnectorResult,
    MockConnector,
    RateLimitError,
)
from .retry import RetryPolicy


def _get_connector_class(mock: bool = False):
    """Get the connector class, importing the GitHub SDK only when needed."""
    if mock:
        return MockConnector

    from .github_connector import GitHubConnector

    return GitHubConnector


__all__ = [
    "BaseConnector",
    "MockConnector",
    "ConnectorResult",
    "ConnectorError",
    "RateLimitError",
    "RetryPolicy",
]
