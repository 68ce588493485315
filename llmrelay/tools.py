from types import MappingProxyType
from typing import Dict, List, Tuple

from .types import ProviderConfig, ToolDefinition

# =============================================================================
# Tool Definitions
# =============================================================================

WEB_SEARCH = "web_search"
FETCH_URL = "fetch_url"
GENERATE_IMAGE = "generate_image"

_DEFINITIONS: Tuple[ToolDefinition, ...] = (
    {
        "name": WEB_SEARCH,
        "description": (
            "Search the web for current information. Returns the top results "
            "with title, URL and a short description."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "The search query",
                },
            },
            "required": ["query"],
        },
    },
    {
        "name": FETCH_URL,
        "description": "Fetch a web page and return its content as markdown.",
        "parameters": {
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The full URL of the page to fetch",
                },
            },
            "required": ["url"],
        },
    },
    {
        "name": GENERATE_IMAGE,
        "description": "Generate an image from a text description.",
        "parameters": {
            "type": "object",
            "properties": {
                "prompt": {
                    "type": "string",
                    "description": "Detailed description of the image to generate",
                },
            },
            "required": ["prompt"],
        },
    },
)

# Indexed by name. Definitions are shared, so callers must not mutate them.
TOOL_DEFINITIONS: "MappingProxyType[str, ToolDefinition]" = MappingProxyType(
    {d["name"]: d for d in _DEFINITIONS}
)


def get_available_tools(config: ProviderConfig) -> List[ToolDefinition]:
    """
    List the tools usable with ``config``, in fixed order.

    - ``web_search`` needs a search provider and a non-blank search API key.
    - ``fetch_url`` is always available.
    - ``generate_image`` needs a non-blank image model.

    Args:
        config (ProviderConfig): Current configuration.

    Returns:
        List[ToolDefinition]: Ordered (web_search, fetch_url, generate_image).
    """
    enabled: Dict[str, bool] = {
        WEB_SEARCH: bool(config.search_provider) and bool((config.search_api_key or "").strip()),
        FETCH_URL: True,
        GENERATE_IMAGE: bool((config.image_model or "").strip()),
    }
    return [d for d in _DEFINITIONS if enabled[d["name"]]]
