"""
Executors for the built-in tools: web search, URL fetch and image generation.
"""
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import httpx

from .errors import ClientAPIError, LLMRelayError, RequestCancelledError
from .tools import FETCH_URL, GENERATE_IMAGE, WEB_SEARCH
from .types import ProviderConfig, ToolCall
from .utils import dig

if TYPE_CHECKING:
    from .client import ChatClient

logger = logging.getLogger(__name__)

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
TAVILY_SEARCH_URL = "https://api.tavily.com/search"
JINA_READER_URL = "https://r.jina.ai/"
MAX_SEARCH_RESULTS = 5


def _decode_json(response: httpx.Response, service: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise ClientAPIError(
            f"{service} returned invalid JSON", status_code=response.status_code
        ) from exc


def format_search_results(query: str, results: List[Dict[str, Any]]) -> str:
    """
    Render search results as markdown.

    Args:
        query (str): The search query.
        results (List[Dict]): Results with ``title``, ``url`` and ``description``.

    Returns:
        str: Markdown document listing the results.
    """
    header = f"# Search results for: {query}\n\n"
    if not results:
        return header + "No results found."

    lines = [header, f"Found {len(results)} results.\n\n"]
    for index, result in enumerate(results, start=1):
        lines.append(f"## {index}. {result.get('title', '')}\n")
        lines.append(f"**URL:** {result.get('url', '')}\n\n")
        lines.append(f"{result.get('description', '')}\n\n")
        lines.append("---\n\n")
    return "".join(lines)


class WebToolExecutor:
    """
    Executes tool calls requested by the model.

    Failures are reported back to the model as an error string instead of
    being raised, so one failing tool does not end the conversation.
    """

    def __init__(self, client: "ChatClient", http_client: Optional[httpx.AsyncClient] = None):
        self.client = client
        self._http = http_client or httpx.AsyncClient(timeout=30.0, follow_redirects=True)
        self._owns_http = http_client is None

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def execute(self, tool_call: ToolCall, config: ProviderConfig) -> str:
        """
        Run one tool call and return its output.

        Args:
            tool_call (ToolCall): The call requested by the model.
            config (ProviderConfig): Supplies search and image settings.

        Returns:
            str: The tool output, or an ``Error ...`` message.
        """
        name = tool_call.get("name", "")
        args = tool_call.get("args") or {}

        try:
            if name == WEB_SEARCH:
                return await self.search_web(str(args.get("query", "")), config)
            if name == FETCH_URL:
                return await self.fetch_web_content(str(args.get("url", "")))
            if name == GENERATE_IMAGE:
                return await self.generate_image(str(args.get("prompt", "")), config)
        except RequestCancelledError:
            raise
        except (LLMRelayError, httpx.HTTPError) as exc:
            logger.error("Tool %s failed: %s", name, exc)
            return f"Error executing tool '{name}': {exc}"

        return f"Error: No handler for tool '{name}'"

    async def search_web(self, query: str, config: ProviderConfig) -> str:
        """
        Search the web with the configured provider (Brave or Tavily).

        Raises:
            ClientAPIError: If no search provider is configured or the search fails.
        """
        api_key = (config.search_api_key or "").strip()
        if config.search_provider == "brave" and api_key:
            results = await self._search_brave(query, api_key)
        elif config.search_provider == "tavily" and api_key:
            results = await self._search_tavily(query, api_key)
        else:
            raise ClientAPIError("Search provider is not configured")

        return format_search_results(query, results)

    async def _search_brave(self, query: str, api_key: str) -> List[Dict[str, Any]]:
        response = await self._http.get(
            BRAVE_SEARCH_URL,
            params={"q": query},
            headers={"Accept": "application/json", "X-Subscription-Token": api_key},
        )
        if not response.is_success:
            raise ClientAPIError(
                f"Brave search error: {response.status_code}", status_code=response.status_code
            )

        items = dig(_decode_json(response, "Brave search"), "web", "results")
        if not isinstance(items, list):
            items = []
        return [
            {
                "title": item.get("title", ""),
                "url": item.get("url", ""),
                "description": item.get("description", ""),
            }
            for item in items[:MAX_SEARCH_RESULTS]
            if isinstance(item, dict)
        ]

    async def _search_tavily(self, query: str, api_key: str) -> List[Dict[str, Any]]:
        response = await self._http.post(
            TAVILY_SEARCH_URL,
            json={
                "api_key": api_key,
                "query": query,
                "search_depth": "basic",
                "max_results": MAX_SEARCH_RESULTS,
            },
        )
        if not response.is_success:
            raise ClientAPIError(
                f"Tavily search error: {response.status_code}", status_code=response.status_code
            )

        items = dig(_decode_json(response, "Tavily search"), "results")
        if not isinstance(items, list):
            items = []
        return [
            {
                "title": item.get("title", ""),
                "url": item.get("url", ""),
                "description": item.get("content", ""),
            }
            for item in items
            if isinstance(item, dict)
        ]

    async def fetch_web_content(self, url: str) -> str:
        """
        Fetch a page as markdown through the Jina AI reader.
        """
        response = await self._http.get(f"{JINA_READER_URL}{url}", headers={"Accept": "text/plain"})
        if not response.is_success:
            raise ClientAPIError(
                f"Failed to fetch web content: {response.status_code}",
                status_code=response.status_code,
            )
        return f"# Web content: {url}\n\n{response.text}"

    async def generate_image(self, prompt: str, config: ProviderConfig) -> str:
        images = await self.client.generate_image(prompt, config)
        if not images:
            return "No image was generated."
        return "\n\n".join(
            f"![Generated image {index}]({image['url']})"
            for index, image in enumerate(images, start=1)
            if image.get("url")
        )
