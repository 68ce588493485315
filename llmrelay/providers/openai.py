import json
from typing import Dict, Any, List, Optional, Tuple

from .base import ChatProviderAdapter
from ..types import Message, ParsedResponse, ProviderConfig, ToolCall, ToolDefinition, ToolResult
from ..utils import decode_arguments, dig


class OpenAIAdapter(ChatProviderAdapter):
    """
    Adapter for OpenAI-compatible Chat Completions APIs.
    """

    name = "openai"

    def convert_messages(
        self,
        messages: List[Message],
    ) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        """
        Convert messages to OpenAI format.

        The system message stays in the array. Canonical tool calls are
        re-encoded with JSON-string arguments; plain messages pass through.
        """
        converted = []
        for msg in messages:
            role = msg.get("role")
            if role == "assistant" and msg.get("tool_calls"):
                converted.append({
                    "role": "assistant",
                    "content": msg.get("content"),
                    "tool_calls": [self._encode_tool_call(tc) for tc in msg["tool_calls"]],
                })
            elif role == "tool":
                converted.append({
                    "role": "tool",
                    "tool_call_id": msg.get("tool_call_id", ""),
                    "content": msg.get("content") or "",
                })
            else:
                converted.append(dict(msg))
        return None, converted

    def build_body(
        self,
        native_messages: List[Dict[str, Any]],
        config: ProviderConfig,
        tools: Optional[List[ToolDefinition]] = None,
        system: Optional[str] = None,
        stream: bool = False,
    ) -> Dict[str, Any]:
        """
        Build a Chat Completions request body.

        Optional parameters are only sent when truthy, so an explicit
        ``temperature=0`` is omitted just like an unset one.
        """
        messages = list(native_messages)
        if system:
            messages.insert(0, {"role": "system", "content": system})

        request = {
            "model": config.model,
            "messages": messages,
        }

        optional_params = {
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "stream": stream,
            "top_p": config.top_p,
            "presence_penalty": config.presence_penalty,
            "frequency_penalty": config.frequency_penalty,
        }
        request.update({k: v for k, v in optional_params.items() if v})

        if tools:
            request["tools"] = self.convert_tools(tools)
        return request

    def build_continuation_body(
        self,
        native_messages: List[Dict[str, Any]],
        config: ProviderConfig,
        tools: Optional[List[ToolDefinition]] = None,
        system: Optional[str] = None,
    ) -> Dict[str, Any]:
        # The system message already travels inside the array
        return self.build_body(native_messages, config, tools)

    @staticmethod
    def convert_tools(tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": tool["name"],
                    "description": tool["description"],
                    "parameters": tool["parameters"],
                },
            }
            for tool in tools
        ]

    @staticmethod
    def _encode_tool_call(tool_call: ToolCall) -> Dict[str, Any]:
        return {
            "id": tool_call["id"],
            "type": "function",
            "function": {
                "name": tool_call["name"],
                "arguments": json.dumps(tool_call.get("args") or {}),
            },
        }

    def parse_response(self, data: Dict[str, Any]) -> ParsedResponse:
        """
        Read ``choices[0].message``: tool calls if present, otherwise its content.
        """
        message = dig(data, "choices", 0, "message") or {}
        raw_calls = message.get("tool_calls") if isinstance(message, dict) else None

        if raw_calls:
            tool_calls: List[ToolCall] = [
                {
                    "id": call.get("id", ""),
                    "name": dig(call, "function", "name") or "",
                    "args": decode_arguments(dig(call, "function", "arguments")),
                }
                for call in raw_calls
            ]
            return {"text": None, "tool_calls": tool_calls, "raw_data": data}

        return {"text": dig(message, "content") or "", "tool_calls": None, "raw_data": data}

    def extract_stream_delta(self, payload: Dict[str, Any]) -> Optional[str]:
        return dig(payload, "choices", 0, "delta", "content") or None

    def append_tool_results(
        self,
        sent_messages: List[Dict[str, Any]],
        raw_response: Dict[str, Any],
        results: List[ToolResult],
    ) -> List[Dict[str, Any]]:
        """
        Append the assistant turn as returned, then one ``tool`` message per result.
        """
        message = dig(raw_response, "choices", 0, "message") or {}
        updated = list(sent_messages)
        updated.append({
            "role": "assistant",
            "content": message.get("content"),
            "tool_calls": message.get("tool_calls"),
        })
        for result in results:
            updated.append({
                "role": "tool",
                "tool_call_id": result["id"],
                "content": result["result"],
            })
        return updated
