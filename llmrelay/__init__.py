from .client import ChatClient
from .cancellation import AbortHandle
from .config import ConfigStore, config_from_env
from .conversation import ConversationStore
from .errors import (
    LLMRelayError, RequestCancelledError, ClientAPIError, RetryableAPIError,
    StreamInterruptedError, ToolLoopLimitError, ConnectionTestError, classify_error,
)
from .providers import get_adapter
from .retry import RetryPolicy, with_retry
from .tools import TOOL_DEFINITIONS, get_available_tools
from .types import (
    ChatResult, Message, ProviderConfig, Provider, ToolCall, ToolDefinition, ToolResult,
)
from .web_tools import WebToolExecutor
from .rich_llm_printer import RichPrinter, RichStreamPrinter

__all__ = [
    "ChatClient",
    "AbortHandle",
    "ConfigStore",
    "config_from_env",
    "ConversationStore",
    "LLMRelayError",
    "RequestCancelledError",
    "ClientAPIError",
    "RetryableAPIError",
    "StreamInterruptedError",
    "ToolLoopLimitError",
    "ConnectionTestError",
    "classify_error",
    "get_adapter",
    "RetryPolicy",
    "with_retry",
    "TOOL_DEFINITIONS",
    "get_available_tools",
    "ChatResult",
    "Message",
    "ProviderConfig",
    "Provider",
    "ToolCall",
    "ToolDefinition",
    "ToolResult",
    "WebToolExecutor",
    "RichPrinter",
    "RichStreamPrinter",
]
