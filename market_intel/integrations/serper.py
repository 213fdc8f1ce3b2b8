"""
Serper.dev Search Client

Google search results for external-presence discovery and competitor
SERP collection.

Serper provides:
- Organic results (title, link, snippet, position)
- Knowledge graph panel (rating, review count, type, address)

API: https://serper.dev/
A missing API key degrades every search to an empty result set.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)


class SearchError(Exception):
    """Custom exception for Serper API errors."""

    def __init__(self, message: str, status_code: int = None, response: dict = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 2
    initial_delay: float = 1.0
    max_delay: float = 8.0
    exponential_base: float = 2.0
    retryable_status_codes: tuple = (429, 500, 502, 503, 504)


@dataclass
class SearchResult:
    """One organic search result."""

    title: str = ""
    link: str = ""
    snippet: str = ""
    position: Optional[int] = None
    keyword: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "title": self.title,
            "link": self.link,
            "snippet": self.snippet,
            "position": self.position,
        }
        if self.keyword:
            data["keyword"] = self.keyword
        return data


@dataclass
class SearchResponse:
    """Result set for a single query."""

    query: str
    organic: List[SearchResult] = field(default_factory=list)
    knowledge_graph: Optional[Dict[str, Any]] = None

    @property
    def is_empty(self) -> bool:
        return not self.organic and not self.knowledge_graph

    def to_dict(self) -> Dict[str, Any]:
        data = {"query": self.query, "organic": [r.to_dict() for r in self.organic]}
        if self.knowledge_graph:
            data["knowledgeGraph"] = self.knowledge_graph
        return data


class SerperClient:
    """
    Async client for the Serper search API.

    Usage:
        async with SerperClient(api_key="your_api_key") as client:
            response = await client.search('"Acme" site:linkedin.com/company')
            for result in response.organic:
                print(result.position, result.link)
    """

    BASE_URL = "https://google.serper.dev"

    def __init__(
        self,
        api_key: Optional[str] = None,
        num_results: int = 5,
        retry_config: Optional[RetryConfig] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize Serper client.

        Args:
            api_key: Serper API key (None disables searching)
            num_results: Results requested per query
            retry_config: Retry configuration (optional)
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.num_results = num_results
        self.retry_config = retry_config or RetryConfig()
        self._client: Optional[httpx.AsyncClient] = None

        if api_key:
            self._client = httpx.AsyncClient(
                base_url=self.BASE_URL,
                headers={"X-API-KEY": api_key, "Content-Type": "application/json"},
                timeout=httpx.Timeout(timeout),
            )

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key)

    async def search(self, query: str, num: Optional[int] = None) -> SearchResponse:
        """
        Run one Google search.

        Never raises: a missing key, an API error or a network failure all
        produce an empty SearchResponse.
        """
        if self._client is None:
            logger.warning("[Serper] No API key configured - returning no results")
            return SearchResponse(query=query)

        payload = {"q": query, "num": num or self.num_results}
        try:
            data = await self._request_with_retry(payload)
        except SearchError as e:
            logger.warning(f"[Serper] Search failed for query '{query}': {e}")
            return SearchResponse(query=query)

        return self._parse_response(query, data)

    def _parse_response(self, query: str, data: Dict[str, Any]) -> SearchResponse:
        organic = []
        for index, item in enumerate(data.get("organic") or [], start=1):
            if not isinstance(item, dict):
                continue
            organic.append(SearchResult(
                title=item.get("title") or "",
                link=item.get("link") or "",
                snippet=item.get("snippet") or "",
                position=item.get("position") or index,
            ))

        knowledge_graph = data.get("knowledgeGraph")
        return SearchResponse(
            query=query,
            organic=organic,
            knowledge_graph=knowledge_graph if isinstance(knowledge_graph, dict) else None,
        )

    async def _request_with_retry(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Make request with retry logic."""
        config = self.retry_config
        last_exception = None

        for attempt in range(config.max_retries + 1):
            try:
                response = await self._client.post("/search", json=payload)

                if response.status_code >= 400:
                    if response.status_code in config.retryable_status_codes:
                        last_exception = SearchError(
                            f"API error: {response.status_code}",
                            status_code=response.status_code,
                        )
                    else:
                        raise SearchError(
                            f"API error: {response.status_code} - {response.text[:200]}",
                            status_code=response.status_code,
                        )
                else:
                    data = response.json()
                    if not isinstance(data, dict):
                        raise SearchError(f"Malformed response body: expected an object, got {type(data).__name__}")
                    return data

            except httpx.TimeoutException as e:
                last_exception = SearchError(f"Request timed out: {e}")
            except httpx.RequestError as e:
                last_exception = SearchError(f"Request failed: {e}")
            except ValueError as e:
                raise SearchError(f"Malformed response body: {e}")

            if attempt < config.max_retries:
                delay = min(
                    config.initial_delay * (config.exponential_base**attempt),
                    config.max_delay,
                )
                logger.warning(
                    f"Serper request failed, retrying in {delay:.1f}s "
                    f"(attempt {attempt + 1}/{config.max_retries + 1})"
                )
                await asyncio.sleep(delay)

        raise last_exception

    async def close(self):
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
