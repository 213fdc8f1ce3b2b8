"""
External Integrations

Web search used by External Presence discovery and competitor SERP
collection.
"""

from .serper import (
    RetryConfig,
    SearchError,
    SearchResponse,
    SearchResult,
    SerperClient,
)

__all__ = [
    "RetryConfig",
    "SearchError",
    "SearchResponse",
    "SearchResult",
    "SerperClient",
]
