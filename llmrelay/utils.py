import json
import logging
from typing import Any, Dict, List, Literal, Optional

from .types import Message, ToolCall, ProviderConfig

logger = logging.getLogger(__name__)

# =============================================================================
# JSON Helpers
# =============================================================================

def dig(data: Any, *path: Any) -> Any:
    """
    Walk a nested JSON value along ``path`` (dict keys and list indexes).

    Missing keys, out-of-range indexes and type mismatches all yield ``None``,
    so a missing field in a provider response never raises.

    Example:
        >>> dig({"choices": [{"message": {"content": "hi"}}]}, "choices", 0, "message", "content")
        'hi'
    """
    current = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or not -len(current) <= key < len(current):
                return None
        elif not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current


def decode_arguments(raw: Any) -> Dict[str, Any]:
    """
    Decode a tool call's arguments, which OpenAI sends as a JSON string.

    Malformed JSON decodes to an empty mapping.
    """
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Could not decode tool call arguments: %r", raw)
        return {}
    return value if isinstance(value, dict) else {}


# =============================================================================
# Message Helpers
# =============================================================================

def create_message(
    role: Literal["system", "user", "assistant"],
    content: Optional[str],
) -> Message:
    """
    Create a canonical Message.

    Args:
        role (str): The role of the message sender ('system', 'user', 'assistant').
        content (str): The text content of the message.

    Returns:
        Message: A dictionary matching the Message type definition.
    """
    return {"role": role, "content": content}


def create_tool_result(tool_call_id: str, name: str, content: str) -> Message:
    """
    Create a canonical tool result message.

    Args:
        tool_call_id (str): The ID of the tool call this result corresponds to.
        name (str): The tool name (Gemini needs it to match the call).
        content (str): The stringified result of the tool execution.

    Returns:
        Message: A message dictionary with role='tool'.
    """
    return {
        "role": "tool",
        "tool_call_id": tool_call_id,
        "name": name,
        "content": content,
    }


def create_assistant_message_with_tool_calls(
    content: Optional[str],
    tool_calls: List[ToolCall],
) -> Message:
    """
    Create a canonical assistant message that includes tool calls.

    Args:
        content (str): Optional text accompanying the tool calls (can be None).
        tool_calls (List[ToolCall]): List of tool call objects.

    Returns:
        Message: A message dictionary with role='assistant'.
    """
    return {
        "role": "assistant",
        "content": content,
        "tool_calls": tool_calls,
    }


def with_system_prompt(messages: List[Message], config: ProviderConfig) -> List[Message]:
    """
    Prepend the configured system prompt unless a system message is already present.
    """
    prompt = (config.system_prompt or "").strip()
    if not prompt or any(m.get("role") == "system" for m in messages):
        return list(messages)
    return [create_message("system", prompt), *messages]


def split_system_message(messages: List[Message]) -> tuple:
    """
    Separate the system message from the rest of the conversation.

    Returns:
        Tuple of (system text or None, remaining messages).
    """
    system_text = None
    rest = []
    for msg in messages:
        if msg.get("role") == "system":
            if system_text is None:
                system_text = msg.get("content")
            continue
        rest.append(msg)
    return system_text, rest


# =============================================================================
# Endpoint Helpers
# =============================================================================

def resolve_model_path(path: str, model: str) -> str:
    """Substitute the ``{model}`` placeholder in a request path."""
    return path.replace("{model}", model)


def build_url(endpoint: str, path: str) -> str:
    return f"{endpoint}{path}"


def mask_token(token: Optional[str]) -> Optional[str]:
    """Mask an API token for logging: first 4 and last 4 characters only."""
    if not token or not isinstance(token, str):
        return token
    if len(token) > 8:
        return f"{token[:4]}...{token[-4:]}"
    return "****"


def sanitize_config(config: ProviderConfig) -> Dict[str, Any]:
    """Config as a dict with secrets masked, safe to log."""
    data = config.to_dict()
    data["token"] = mask_token(data.get("token"))
    data["search_api_key"] = mask_token(data.get("search_api_key"))
    return data


def to_data_url(b64_data: str, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{b64_data}"


# =============================================================================
# Server-Sent Events
# =============================================================================

class SSEDecoder:
    """
    Incremental decoder for ``data: <json>`` Server-Sent-Event frames.

    Text chunks may split lines anywhere; partial lines are buffered until
    the next chunk completes them. The ``[DONE]`` sentinel is dropped.
    """

    DONE = "[DONE]"

    def __init__(self):
        self._buffer = ""

    def feed(self, chunk: str) -> List[str]:
        """
        Add a chunk of text and return the complete ``data`` payloads it finished.
        """
        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return [p for p in (self._payload(line) for line in lines) if p is not None]

    def flush(self) -> List[str]:
        """Return the payload of a final unterminated line, if any."""
        line, self._buffer = self._buffer, ""
        payload = self._payload(line)
        return [payload] if payload is not None else []

    def _payload(self, line: str) -> Optional[str]:
        line = line.rstrip("\r")
        if not line.startswith("data: "):
            return None
        data = line[len("data: "):].strip()
        if not data or data == self.DONE:
            return None
        return data


def parse_sse_payload(payload: str) -> Optional[Dict[str, Any]]:
    """
    Parse one SSE JSON payload; malformed JSON is logged and yields ``None``.
    """
    try:
        parsed = json.loads(payload)
    except ValueError as exc:
        logger.error("Failed to parse SSE data %r: %s", payload[:200], exc)
        return None
    return parsed if isinstance(parsed, dict) else None
