from typing import Dict, Any, List, Optional, Tuple

from .base import ChatProviderAdapter
from ..types import Message, ParsedResponse, ProviderConfig, ToolCall, ToolDefinition, ToolResult
from ..utils import dig, split_system_message, to_data_url

GENERATE_CONTENT = ":generateContent"
STREAM_GENERATE_CONTENT = ":streamGenerateContent"


def gemini_tool_id(index: int) -> str:
    """Synthesized id for the ``index``-th function call of a Gemini response."""
    return f"gemini_tool_{index}"


class GeminiAdapter(ChatProviderAdapter):
    """
    Adapter for the Gemini ``generateContent`` API.
    """

    name = "gemini"
    messages_key = "contents"

    def convert_messages(
        self,
        messages: List[Message],
    ) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        """
        Convert messages to Gemini ``contents``.

        Roles map assistant -> model and everything else -> user. Tool calls
        become ``functionCall`` parts; consecutive tool results are merged into
        one user turn of ``functionResponse`` parts.
        """
        system_text, rest = split_system_message(messages)
        contents: List[Dict[str, Any]] = []

        for msg in rest:
            role = msg.get("role")
            if role == "assistant" and msg.get("tool_calls"):
                parts: List[Dict[str, Any]] = []
                if msg.get("content"):
                    parts.append({"text": msg["content"]})
                for tc in msg["tool_calls"]:
                    parts.append({"functionCall": {"name": tc["name"], "args": tc.get("args") or {}}})
                contents.append({"role": "model", "parts": parts})
            elif role == "tool":
                part = {
                    "functionResponse": {
                        "name": msg.get("name", ""),
                        "response": {"content": msg.get("content") or ""},
                    }
                }
                if contents and self._is_function_response_turn(contents[-1]):
                    contents[-1]["parts"].append(part)
                else:
                    contents.append({"role": "user", "parts": [part]})
            else:
                contents.append({
                    "role": "model" if role == "assistant" else "user",
                    "parts": [{"text": msg.get("content") or ""}],
                })

        return system_text, contents

    @staticmethod
    def _is_function_response_turn(content: Dict[str, Any]) -> bool:
        parts = content.get("parts") or []
        return (
            content.get("role") == "user"
            and bool(parts)
            and all("functionResponse" in part for part in parts)
        )

    def build_body(
        self,
        native_messages: List[Dict[str, Any]],
        config: ProviderConfig,
        tools: Optional[List[ToolDefinition]] = None,
        system: Optional[str] = None,
        stream: bool = False,
    ) -> Dict[str, Any]:
        """
        Build a ``generateContent`` body.

        Streaming is selected by the request path, not the body.
        """
        request: Dict[str, Any] = {"contents": list(native_messages)}

        if system:
            request["systemInstruction"] = {"parts": [{"text": system}]}

        generation_config: Dict[str, Any] = {}
        if config.temperature is not None:
            generation_config["temperature"] = config.temperature
        if config.max_tokens:
            generation_config["maxOutputTokens"] = config.max_tokens
        if config.top_p:
            generation_config["topP"] = config.top_p
        if generation_config:
            request["generationConfig"] = generation_config

        # Some Gemini endpoints reject an empty tools array
        if tools:
            request["tools"] = self.convert_tools(tools)
        return request

    @staticmethod
    def convert_tools(tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
        return [{
            "functionDeclarations": [
                {
                    "name": tool["name"],
                    "description": tool["description"],
                    "parameters": tool["parameters"],
                }
                for tool in tools
            ]
        }]

    def resolve_chat_path(self, config: ProviderConfig, stream: bool = False) -> str:
        path = super().resolve_chat_path(config, stream)
        if stream and GENERATE_CONTENT in path:
            path = path.replace(GENERATE_CONTENT, STREAM_GENERATE_CONTENT)
            path += "&alt=sse" if "?" in path else "?alt=sse"
        return path

    @staticmethod
    def is_native_path(path: str) -> bool:
        """Whether ``path`` targets Gemini's own API rather than an OpenAI-compatible proxy."""
        return (
            ("generateContent" in path or "/models/" in path)
            and "/chat/completions" not in path
        )

    def system_text(self, body: Dict[str, Any]) -> Optional[str]:
        return dig(body, "systemInstruction", "parts", 0, "text")

    def build_headers(self, config: ProviderConfig, path: str) -> Dict[str, str]:
        if not self.is_native_path(path):
            return super().build_headers(config, path)
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": (config.token or "").strip(),
        }

    def parse_response(self, data: Dict[str, Any]) -> ParsedResponse:
        """
        Parse ``candidates[0].content.parts``.

        Function-call ids are numbered among the function-call parts only, so
        they stay stable when the parts are echoed back on continuation.
        """
        parts = [p for p in dig(data, "candidates", 0, "content", "parts") or [] if isinstance(p, dict)]
        calls = [p["functionCall"] for p in parts if isinstance(p.get("functionCall"), dict)]

        if calls:
            tool_calls: List[ToolCall] = [
                {
                    "id": gemini_tool_id(index),
                    "name": call.get("name", ""),
                    "args": call.get("args") or {},
                }
                for index, call in enumerate(calls)
            ]
            return {"text": None, "tool_calls": tool_calls, "raw_data": data}

        return {"text": dig(parts, 0, "text") or "", "tool_calls": None, "raw_data": data}

    def extract_stream_delta(self, payload: Dict[str, Any]) -> Optional[str]:
        return dig(payload, "candidates", 0, "content", "parts", 0, "text") or None

    def append_tool_results(
        self,
        sent_messages: List[Dict[str, Any]],
        raw_response: Dict[str, Any],
        results: List[ToolResult],
    ) -> List[Dict[str, Any]]:
        """
        Append the model turn with its original parts, then one user turn of
        ``functionResponse`` parts.
        """
        updated = list(sent_messages)
        updated.append({
            "role": "model",
            "parts": dig(raw_response, "candidates", 0, "content", "parts") or [],
        })
        updated.append({
            "role": "user",
            "parts": [
                {
                    "functionResponse": {
                        "name": result["name"],
                        "response": {"content": result["result"]},
                    }
                }
                for result in results
            ],
        })
        return updated

    # ==========================================================================
    # Image generation
    # ==========================================================================

    def build_image_request(self, prompt: str, config: ProviderConfig) -> Dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }

    def parse_image_response(self, data: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Collect ``inlineData`` parts from every candidate as data URLs.
        """
        images = []
        for candidate in dig(data, "candidates") or []:
            for part in dig(candidate, "content", "parts") or []:
                inline = dig(part, "inlineData")
                if not isinstance(inline, dict) or not inline.get("data"):
                    continue
                mime_type = inline.get("mimeType") or "image/png"
                images.append({
                    "mime_type": mime_type,
                    "url": to_data_url(inline["data"], mime_type),
                })
        return images
