from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Tuple

from ..types import Message, ParsedResponse, Provider, ProviderConfig, ToolDefinition, ToolResult
from ..utils import dig, resolve_model_path, to_data_url


class ChatProviderAdapter(ABC):
    """
    Abstract base class for provider wire-format adapters.

    Adapters are stateless translators between the canonical conversation
    model and one provider's HTTP API. They never perform I/O.
    """

    name: Provider
    # Key of the native message array inside a request body
    messages_key: str = "messages"

    # ==========================================================================
    # Requests
    # ==========================================================================

    def build_request(
        self,
        messages: List[Message],
        config: ProviderConfig,
        tools: Optional[List[ToolDefinition]] = None,
        stream: bool = False,
    ) -> Dict[str, Any]:
        """
        Build the wire request body for a canonical conversation.

        Args:
            messages (List[Message]): Canonical conversation, system message included.
            config (ProviderConfig): Model and generation parameters.
            tools (List[ToolDefinition], optional): Tools to offer the model.
            stream (bool): Request a Server-Sent-Events response.

        Returns:
            Dict[str, Any]: JSON-serializable request body.
        """
        system_text, native_messages = self.convert_messages(messages)
        return self.build_body(native_messages, config, tools, system=system_text, stream=stream)

    @abstractmethod
    def convert_messages(
        self,
        messages: List[Message],
    ) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        """
        Convert canonical messages to the provider's native message array.

        Returns:
            Tuple of (system text lifted out of the array or None, native messages).
        """

    @abstractmethod
    def build_body(
        self,
        native_messages: List[Dict[str, Any]],
        config: ProviderConfig,
        tools: Optional[List[ToolDefinition]] = None,
        system: Optional[str] = None,
        stream: bool = False,
    ) -> Dict[str, Any]:
        """Assemble a request body around an already-native message array."""

    def build_continuation_body(
        self,
        native_messages: List[Dict[str, Any]],
        config: ProviderConfig,
        tools: Optional[List[ToolDefinition]] = None,
        system: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Body for a follow-up request over an already-native array.

        Args:
            system (str, optional): System text lifted out of the previous request
                body (see :meth:`system_text`). Providers that keep the system
                message inside the array ignore it.
        """
        return self.build_body(native_messages, config, tools, system=system)

    @staticmethod
    @abstractmethod
    def convert_tools(tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
        """Convert canonical tool definitions to the provider's tool format."""

    def sent_messages(self, body: Dict[str, Any]) -> List[Dict[str, Any]]:
        """The native message array carried by a request body."""
        return body[self.messages_key]

    def system_text(self, body: Dict[str, Any]) -> Optional[str]:
        """System text carried outside the message array, or None when it lives inside."""
        return None

    # ==========================================================================
    # Responses
    # ==========================================================================

    @abstractmethod
    def parse_response(self, data: Dict[str, Any]) -> ParsedResponse:
        """
        Parse a non-streaming response into text or tool calls.

        Exactly one of ``text`` and ``tool_calls`` is set in the result.
        """

    @abstractmethod
    def extract_stream_delta(self, payload: Dict[str, Any]) -> Optional[str]:
        """Incremental text carried by one streaming event, if any."""

    # ==========================================================================
    # Tool continuation
    # ==========================================================================

    @abstractmethod
    def append_tool_results(
        self,
        sent_messages: List[Dict[str, Any]],
        raw_response: Dict[str, Any],
        results: List[ToolResult],
    ) -> List[Dict[str, Any]]:
        """
        Append the assistant's tool-call turn and the tool outputs.

        Returns a new native array; ``sent_messages`` is left untouched.
        """

    # ==========================================================================
    # Endpoint and headers
    # ==========================================================================

    def resolve_chat_path(self, config: ProviderConfig, stream: bool = False) -> str:
        return resolve_model_path(config.chat_path or "/chat/completions", config.model)

    def build_headers(self, config: ProviderConfig, path: str) -> Dict[str, str]:
        """
        Request headers for ``path``.

        Args:
            config (ProviderConfig): Supplies the token.
            path (str): The resolved request path (some providers pick the auth style from it).
        """
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {(config.token or '').strip()}",
        }

    # ==========================================================================
    # Image generation (OpenAI images API shape by default)
    # ==========================================================================

    def resolve_image_path(self, config: ProviderConfig) -> str:
        return resolve_model_path(config.image_path or "/images/generations", config.image_model)

    def build_image_request(self, prompt: str, config: ProviderConfig) -> Dict[str, Any]:
        return {
            "prompt": prompt,
            "model": config.image_model or "dall-e-3",
            "n": config.image_count or 1,
            "size": config.image_size or "1024x1024",
            "quality": config.image_quality or "standard",
            "style": config.image_style or "vivid",
            "response_format": "b64_json",
        }

    def parse_image_response(self, data: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Extract generated images; base64 payloads become ``data:image/png`` URLs.
        """
        images = []
        for image in dig(data, "data") or []:
            if not isinstance(image, dict):
                continue
            if image.get("b64_json"):
                image = {**image, "url": to_data_url(image["b64_json"], "image/png")}
            images.append(image)
        return images
