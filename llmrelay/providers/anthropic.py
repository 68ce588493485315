from typing import Dict, Any, List, Optional, Tuple

from .base import ChatProviderAdapter
from ..types import Message, ParsedResponse, ProviderConfig, ToolCall, ToolDefinition, ToolResult
from ..utils import dig, split_system_message

# Anthropic requires max_tokens on every request
DEFAULT_MAX_TOKENS = 2000
ANTHROPIC_VERSION = "2023-06-01"


class AnthropicAdapter(ChatProviderAdapter):
    """
    Adapter for Anthropic-compatible Messages APIs.
    """

    name = "anthropic"

    def convert_messages(
        self,
        messages: List[Message],
    ) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        """
        Convert messages to Anthropic format.

        Anthropic's API differs from OpenAI's in that the system prompt is a
        separate top-level field, not part of the ``messages`` list. Tool calls
        become ``tool_use`` blocks and consecutive tool results are merged into
        a single user turn of ``tool_result`` blocks.

        Args:
            messages (List[Message]): Canonical message list.

        Returns:
            Tuple containing:
            - system_text: Extracted system prompt string (or None)
            - converted: List of message dicts suitable for the API
        """
        system_text, rest = split_system_message(messages)
        converted: List[Dict[str, Any]] = []

        for msg in rest:
            role = msg.get("role")
            if role == "assistant" and msg.get("tool_calls"):
                blocks: List[Dict[str, Any]] = []
                if msg.get("content"):
                    blocks.append({"type": "text", "text": msg["content"]})
                for tc in msg["tool_calls"]:
                    blocks.append({
                        "type": "tool_use",
                        "id": tc["id"],
                        "name": tc["name"],
                        "input": tc.get("args") or {},
                    })
                converted.append({"role": "assistant", "content": blocks})
            elif role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": msg.get("tool_call_id", ""),
                    "content": msg.get("content") or "",
                }
                if converted and self._is_tool_result_turn(converted[-1]):
                    converted[-1]["content"].append(block)
                else:
                    converted.append({"role": "user", "content": [block]})
            else:
                converted.append(dict(msg))

        return system_text, converted

    @staticmethod
    def _is_tool_result_turn(message: Dict[str, Any]) -> bool:
        content = message.get("content")
        return (
            message.get("role") == "user"
            and isinstance(content, list)
            and bool(content)
            and all(block.get("type") == "tool_result" for block in content)
        )

    def build_body(
        self,
        native_messages: List[Dict[str, Any]],
        config: ProviderConfig,
        tools: Optional[List[ToolDefinition]] = None,
        system: Optional[str] = None,
        stream: bool = False,
    ) -> Dict[str, Any]:
        request = {
            "model": config.model,
            "max_tokens": config.max_tokens or DEFAULT_MAX_TOKENS,
            "messages": list(native_messages),
        }

        optional_params = {
            "system": system,
            "temperature": config.temperature,
            "top_p": config.top_p or None,
            "stream": stream or None,
        }
        request.update({k: v for k, v in optional_params.items() if v is not None})

        if tools:
            request["tools"] = self.convert_tools(tools)
        return request

    @staticmethod
    def convert_tools(tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
        """
        Convert tool definitions to Claude format.

        Claude uses 'input_schema' instead of 'parameters'.
        """
        return [
            {
                "name": tool["name"],
                "description": tool["description"],
                "input_schema": tool["parameters"],
            }
            for tool in tools
        ]

    def system_text(self, body: Dict[str, Any]) -> Optional[str]:
        return body.get("system")

    def build_headers(self, config: ProviderConfig, path: str) -> Dict[str, str]:
        headers = super().build_headers(config, path)
        headers["anthropic-version"] = ANTHROPIC_VERSION
        return headers

    def parse_response(self, data: Dict[str, Any]) -> ParsedResponse:
        """
        Parse tool calls from the ``tool_use`` content blocks, or else the
        first ``text`` block.
        """
        blocks = [b for b in dig(data, "content") or [] if isinstance(b, dict)]

        tool_calls: List[ToolCall] = [
            {
                "id": block.get("id", ""),
                "name": block.get("name", ""),
                "args": block.get("input") or {},
            }
            for block in blocks
            if block.get("type") == "tool_use"
        ]
        if tool_calls:
            return {"text": None, "tool_calls": tool_calls, "raw_data": data}

        text = next((b.get("text") for b in blocks if b.get("type") == "text"), None)
        return {"text": text or "", "tool_calls": None, "raw_data": data}

    def extract_stream_delta(self, payload: Dict[str, Any]) -> Optional[str]:
        return dig(payload, "delta", "text") or None

    def append_tool_results(
        self,
        sent_messages: List[Dict[str, Any]],
        raw_response: Dict[str, Any],
        results: List[ToolResult],
    ) -> List[Dict[str, Any]]:
        """
        Append the assistant content blocks as returned, then a single user turn
        aggregating every ``tool_result``.
        """
        updated = list(sent_messages)
        updated.append({"role": "assistant", "content": dig(raw_response, "content") or []})
        updated.append({
            "role": "user",
            "content": [
                {
                    "type": "tool_result",
                    "tool_use_id": result["id"],
                    "content": result["result"],
                }
                for result in results
            ],
        })
        return updated
