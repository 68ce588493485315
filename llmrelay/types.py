from dataclasses import dataclass, asdict, fields
from typing import Literal, List, Dict, Any, Optional, Protocol, TypedDict

# =============================================================================
# Type Definitions
# =============================================================================

# Supported LLM providers
Provider = Literal["openai", "anthropic", "gemini"]

# Supported web search backends for the web_search tool
SearchProvider = Literal["brave", "tavily"]


class ToolCall(TypedDict):
    """
    Tool call from an LLM response.

    Gemini does not assign ids, so they are synthesized as ``gemini_tool_<index>``.
    """
    id: str
    name: str
    args: Dict[str, Any]  # Parsed JSON arguments


class ToolResult(TypedDict):
    """
    Output of an executed tool, sent back to the LLM on continuation.
    """
    id: str
    name: str
    result: str


class ToolDefinition(TypedDict):
    """
    Provider-agnostic tool definition (JSON-Schema parameters).
    """
    name: str
    description: str
    parameters: Dict[str, Any]


class Message(TypedDict, total=False):
    """
    Canonical chat message.

    Roles:
    - "system": System prompt / instructions
    - "user": User message
    - "assistant": Model response
    - "tool": Tool execution result
    """
    role: Literal["system", "user", "assistant", "tool"]
    content: Optional[str]
    tool_calls: List[ToolCall]  # For assistant messages with tool calls
    tool_call_id: str  # For tool result messages
    name: str  # Tool name, for tool result messages


class ParsedResponse(TypedDict):
    """
    Canonical view of one provider response. Exactly one of text/tool_calls is set.
    """
    text: Optional[str]
    tool_calls: Optional[List[ToolCall]]
    raw_data: Dict[str, Any]


class ChatResult(TypedDict):
    """
    Result of a chat round trip.

    ``sent_messages`` is the provider-native message array that was transmitted;
    continuation requests must echo it back rather than the canonical messages.
    ``system`` is the system text sent outside that array (Anthropic, Gemini),
    or None when the provider keeps it inside the array or none was sent.
    """
    text: Optional[str]
    tool_calls: Optional[List[ToolCall]]
    raw_response: Optional[Dict[str, Any]]
    sent_messages: List[Dict[str, Any]]
    system: Optional[str]


# =============================================================================
# Configuration
# =============================================================================

@dataclass(frozen=True)
class ProviderConfig:
    """
    Connection, generation and tool settings for one provider endpoint.

    Generation parameters left as ``None`` are not sent.
    """
    provider: Provider = "openai"
    endpoint: str = ""
    model: str = ""
    token: str = ""
    chat_path: str = "/chat/completions"
    image_path: str = "/images/generations"
    system_prompt: str = ""
    enable_streaming: bool = False
    enable_tools: bool = False

    # Generation parameters
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None

    # Image generation
    image_model: str = "dall-e-3"
    image_size: str = "1024x1024"
    image_quality: str = "standard"
    image_style: str = "vivid"
    image_count: int = 1

    # Web tools
    search_provider: Optional[SearchProvider] = "brave"
    search_api_key: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProviderConfig":
        """Build a config from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


class ToolExecutor(Protocol):
    """
    Runs a tool call on behalf of the model and returns its output as text.
    """

    async def execute(self, tool_call: ToolCall, config: ProviderConfig) -> str:
        ...
