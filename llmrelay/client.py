import inspect
import logging
from dataclasses import replace
from typing import Optional, Dict, List, Any, Callable, Tuple

import httpx

from .cancellation import AbortHandle
from .errors import (
    ClientAPIError, LLMRelayError, RetryableAPIError, StreamInterruptedError,
    ToolLoopLimitError, ConnectionTestError, error_from_response,
)
from .providers import ChatProviderAdapter, get_adapter
from .retry import RetryPolicy, with_retry
from .tools import get_available_tools
from .types import (
    ChatResult, Message, ProviderConfig, ToolDefinition, ToolExecutor, ToolResult,
)
from .utils import (
    SSEDecoder, build_url, create_message, parse_sse_payload,
    sanitize_config, with_system_prompt,
)

logger = logging.getLogger(__name__)

# Called with each streamed text delta; may be a plain function or a coroutine function
ChunkCallback = Callable[[str], Any]

DEFAULT_TIMEOUT = httpx.Timeout(120.0, connect=10.0)
DEFAULT_MAX_TOOL_ITERATIONS = 5
CONNECTION_TEST_MESSAGE = "Hello, this is a connection test."


class ChatClient:
    """
    Client for chatting with OpenAI-, Anthropic- and Gemini-compatible HTTP APIs.

    A client instance tracks a single in-flight request. Starting a new chat,
    continuation or image request aborts whatever request was in flight, which
    then fails with :class:`~llmrelay.errors.RequestCancelledError`. Use one
    client per independent conversation if requests must run in parallel.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        """
        Initialize the ChatClient.

        Args:
            http_client: Pre-configured httpx client. A new one is created (and
                closed by :meth:`aclose`) when omitted.
            retry_policy: Retry policy for every request. Defaults to 4 attempts
                with 1s, 2s and 4s backoff.
        """
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
        self.retry_policy = retry_policy or RetryPolicy()
        self._abort: Optional[AbortHandle] = None
        self._loop_abort: Optional[AbortHandle] = None
        # (sent_messages, system) of the latest request, for continuations
        self._last_sent: Optional[Tuple[List[Dict[str, Any]], Optional[str]]] = None

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ==========================================================================
    # Cancellation
    # ==========================================================================

    def begin_request(self) -> AbortHandle:
        """Abort the in-flight request, if any, and open a fresh abort slot."""
        if self._abort is not None:
            self._abort.abort()
        self._abort = AbortHandle()
        return self._abort

    def cancel_request(self) -> None:
        """Abort the in-flight request and any running tool loop, without starting a new one."""
        for handle in (self._abort, self._loop_abort):
            if handle is not None:
                handle.abort()

    # ==========================================================================
    # Unified Chat Methods
    # ==========================================================================

    async def send_chat_message(
        self,
        messages: List[Message],
        config: ProviderConfig,
        on_chunk: Optional[ChunkCallback] = None,
        tools: Optional[List[ToolDefinition]] = None,
    ) -> ChatResult:
        """
        Send a conversation to the configured provider, with retries.

        The configured system prompt is prepended when the conversation has no
        system message. With ``config.enable_streaming`` and an ``on_chunk``
        callback the response is streamed; tools are not offered in that mode.

        Args:
            messages (List[Message]): Canonical conversation history.
            config (ProviderConfig): Provider, endpoint and generation settings.
            on_chunk (Callable, optional): Receives each streamed text delta.
            tools (List[ToolDefinition], optional): Tools to offer. Defaults to
                the available tools when ``config.enable_tools`` is set.

        Returns:
            ChatResult: Text or tool calls, the raw response and the native
                messages that were sent.

        Raises:
            RequestCancelledError: The request was superseded or cancelled.
            LLMRelayError: The request failed (after retries where applicable).
        """
        messages = with_system_prompt(messages, config)
        abort = self.begin_request()

        if config.enable_streaming and on_chunk is not None:
            return await with_retry(
                lambda: self._stream_request(messages, config, abort, on_chunk),
                abort,
                self.retry_policy,
            )

        tools = self._resolve_tools(config, tools)
        return await with_retry(
            lambda: self.chat_request(messages, config, abort, tools),
            abort,
            self.retry_policy,
        )

    async def chat_request(
        self,
        messages: List[Message],
        config: ProviderConfig,
        abort: AbortHandle,
        tools: Optional[List[ToolDefinition]] = None,
    ) -> ChatResult:
        """
        Perform one non-streaming HTTP round trip, without retries.

        Args:
            messages (List[Message]): Canonical conversation, sent as given.
            config (ProviderConfig): Provider settings.
            abort (AbortHandle): Abort handle that tears the request down.
            tools (List[ToolDefinition], optional): Tools to offer the model.

        Returns:
            ChatResult: The parsed response.
        """
        adapter = get_adapter(config.provider)
        body = adapter.build_request(messages, config, tools)
        return await self._exchange(adapter, body, config, abort)

    async def continue_with_tool_results(
        self,
        sent_messages: List[Dict[str, Any]],
        config: ProviderConfig,
        raw_response: Dict[str, Any],
        results: List[ToolResult],
        tools: Optional[List[ToolDefinition]] = None,
        system: Optional[str] = None,
    ) -> ChatResult:
        """
        Send tool outputs back to the model after a tool-call response.

        The assistant's tool-call turn and the results are appended to
        ``sent_messages`` in the provider's native shape and the request is
        re-issued with the same retry and cancellation behaviour.

        Args:
            sent_messages: ``sent_messages`` of the tool-call ChatResult.
            config (ProviderConfig): Same configuration as the prior call.
            raw_response: ``raw_response`` of the tool-call ChatResult.
            results (List[ToolResult]): One result per tool call, in call order.
            tools (List[ToolDefinition], optional): Tools to keep offering.
            system (str, optional): ``system`` of the tool-call ChatResult. When
                omitted, the system text of the request that produced
                ``sent_messages`` is reused, falling back to ``config.system_prompt``.

        Returns:
            ChatResult: The next response, which may request more tools.
        """
        adapter = get_adapter(config.provider)
        native_messages = adapter.append_tool_results(sent_messages, raw_response, results)
        if system is None:
            system = self._continuation_system(sent_messages, config)
        body = adapter.build_continuation_body(
            native_messages, config, self._resolve_tools(config, tools), system=system
        )
        abort = self.begin_request()
        return await with_retry(
            lambda: self._exchange(adapter, body, config, abort),
            abort,
            self.retry_policy,
        )

    async def chat_with_tools(
        self,
        messages: List[Message],
        config: ProviderConfig,
        executor: ToolExecutor,
        max_iterations: int = DEFAULT_MAX_TOOL_ITERATIONS,
        tools: Optional[List[ToolDefinition]] = None,
    ) -> ChatResult:
        """
        Chat with automatic tool execution.

        1. Send the conversation with the tool definitions.
        2. If the model requests tools, run each through ``executor``.
        3. Feed the results back and repeat until the model answers in text.

        Args:
            messages (List[Message]): Canonical conversation history.
            config (ProviderConfig): Provider settings; streaming is ignored.
            executor (ToolExecutor): Runs tool calls and returns string results.
            max_iterations (int): Maximum number of continuation rounds.
            tools (List[ToolDefinition], optional): Defaults to the tools
                available for ``config``.

        Returns:
            ChatResult: The final text response.

        Raises:
            ToolLoopLimitError: The model still requested tools after
                ``max_iterations`` rounds.
            RequestCancelledError: :meth:`cancel_request` was called, including
                while a tool was running.
        """
        config = replace(config, enable_streaming=False)
        if tools is None:
            tools = get_available_tools(config)

        # Spans the whole loop; per-request handles end with each request
        if self._loop_abort is not None:
            self._loop_abort.abort()
        loop_abort = self._loop_abort = AbortHandle()

        try:
            result = await self.send_chat_message(messages, config, tools=tools)
            iterations = 0

            while result["tool_calls"]:
                if iterations >= max_iterations:
                    raise ToolLoopLimitError(
                        f"Model requested tools more than {max_iterations} times in a row"
                    )
                iterations += 1

                results: List[ToolResult] = []
                for tool_call in result["tool_calls"]:
                    loop_abort.raise_if_aborted()
                    logger.info("Executing tool %s (%s)", tool_call["name"], tool_call["id"])
                    output = await loop_abort.run(executor.execute(tool_call, config))
                    results.append({"id": tool_call["id"], "name": tool_call["name"], "result": output})

                loop_abort.raise_if_aborted()
                result = await self.continue_with_tool_results(
                    result["sent_messages"], config, result["raw_response"], results,
                    tools=tools, system=result["system"],
                )
        finally:
            if self._loop_abort is loop_abort:
                self._loop_abort = None

        return result

    async def generate_image(self, prompt: str, config: ProviderConfig) -> List[Dict[str, Any]]:
        """
        Generate images from a prompt.

        Returns:
            List of image dicts, each with a ``url`` holding a ``data:`` URL.
        """
        adapter = get_adapter(config.provider)
        path = adapter.resolve_image_path(config)
        url = build_url(config.endpoint, path)
        headers = adapter.build_headers(config, path)
        body = adapter.build_image_request(prompt, config)
        abort = self.begin_request()

        async def attempt() -> List[Dict[str, Any]]:
            data = await self._post_json(url, headers, body, abort)
            return adapter.parse_image_response(data)

        return await with_retry(attempt, abort, self.retry_policy)

    async def test_connection(self, config: ProviderConfig) -> bool:
        """
        Send a fixed probe message through the regular chat path.

        Raises:
            ConnectionTestError: Wrapping the underlying failure message.
        """
        probe = replace(config, enable_streaming=False, enable_tools=False)
        try:
            await self.send_chat_message([create_message("user", CONNECTION_TEST_MESSAGE)], probe)
        except LLMRelayError as exc:
            raise ConnectionTestError(
                f"Connection test failed: {exc.message}", status_code=exc.status_code
            ) from exc
        except ValueError as exc:
            raise ConnectionTestError(f"Connection test failed: {exc}") from exc
        return True

    # ==========================================================================
    # Transport
    # ==========================================================================

    @staticmethod
    def _resolve_tools(
        config: ProviderConfig,
        tools: Optional[List[ToolDefinition]],
    ) -> Optional[List[ToolDefinition]]:
        if tools is not None:
            return tools or None
        if config.enable_tools:
            return get_available_tools(config) or None
        return None

    async def _exchange(
        self,
        adapter: ChatProviderAdapter,
        body: Dict[str, Any],
        config: ProviderConfig,
        abort: AbortHandle,
    ) -> ChatResult:
        path = adapter.resolve_chat_path(config)
        url = build_url(config.endpoint, path)
        logger.debug("Chat request to %s with config %s", url, sanitize_config(config))

        data = await self._post_json(url, adapter.build_headers(config, path), body, abort)
        parsed = adapter.parse_response(data)
        return self._record({
            "text": parsed["text"],
            "tool_calls": parsed["tool_calls"],
            "raw_response": data,
            "sent_messages": adapter.sent_messages(body),
            "system": adapter.system_text(body),
        })

    def _record(self, result: ChatResult) -> ChatResult:
        self._last_sent = (result["sent_messages"], result["system"])
        return result

    def _continuation_system(
        self,
        sent_messages: List[Dict[str, Any]],
        config: ProviderConfig,
    ) -> Optional[str]:
        if self._last_sent is not None and self._last_sent[0] is sent_messages:
            return self._last_sent[1]
        return (config.system_prompt or "").strip() or None

    async def _post_json(
        self,
        url: str,
        headers: Dict[str, str],
        body: Dict[str, Any],
        abort: AbortHandle,
    ) -> Dict[str, Any]:
        try:
            response = await abort.run(self._http.post(url, json=body, headers=headers))
        except httpx.UnsupportedProtocol as exc:
            raise ClientAPIError(f"Invalid endpoint URL {url!r}: {exc}") from exc
        except httpx.TransportError as exc:
            raise RetryableAPIError(f"Network error: {exc}") from exc

        logger.debug("Response from %s: %s %s", url, response.status_code, response.reason_phrase)
        if not response.is_success:
            raise error_from_response(response.status_code, response.reason_phrase, response.content)

        try:
            data = response.json()
        except ValueError as exc:
            raise LLMRelayError(
                f"Invalid JSON in response: {exc}", status_code=response.status_code
            ) from exc
        if not isinstance(data, dict):
            raise LLMRelayError("Unexpected response shape", status_code=response.status_code)
        return data

    async def _stream_request(
        self,
        messages: List[Message],
        config: ProviderConfig,
        abort: AbortHandle,
        on_chunk: ChunkCallback,
    ) -> ChatResult:
        adapter = get_adapter(config.provider)
        body = adapter.build_request(messages, config, stream=True)
        path = adapter.resolve_chat_path(config, stream=True)
        url = build_url(config.endpoint, path)
        headers = adapter.build_headers(config, path)
        delivered: List[str] = []

        logger.debug("Streaming request to %s with config %s", url, sanitize_config(config))
        try:
            await abort.run(self._consume_stream(adapter, url, headers, body, on_chunk, delivered))
        except httpx.UnsupportedProtocol as exc:
            raise ClientAPIError(f"Invalid endpoint URL {url!r}: {exc}") from exc
        except httpx.TransportError as exc:
            if delivered:
                raise StreamInterruptedError(f"Stream interrupted: {exc}") from exc
            raise RetryableAPIError(f"Network error: {exc}") from exc

        return self._record({
            "text": "".join(delivered),
            "tool_calls": None,
            "raw_response": None,
            "sent_messages": adapter.sent_messages(body),
            "system": adapter.system_text(body),
        })

    async def _consume_stream(
        self,
        adapter: ChatProviderAdapter,
        url: str,
        headers: Dict[str, str],
        body: Dict[str, Any],
        on_chunk: ChunkCallback,
        delivered: List[str],
    ) -> None:
        async with self._http.stream("POST", url, json=body, headers=headers) as response:
            if not response.is_success:
                content = await response.aread()
                raise error_from_response(response.status_code, response.reason_phrase, content)

            decoder = SSEDecoder()
            async for text in response.aiter_text():
                for payload in decoder.feed(text):
                    await self._emit_delta(adapter, payload, on_chunk, delivered)
            for payload in decoder.flush():
                await self._emit_delta(adapter, payload, on_chunk, delivered)

    @staticmethod
    async def _emit_delta(
        adapter: ChatProviderAdapter,
        payload: str,
        on_chunk: ChunkCallback,
        delivered: List[str],
    ) -> None:
        event = parse_sse_payload(payload)
        if event is None:
            return
        delta = adapter.extract_stream_delta(event)
        if not delta:
            return
        delivered.append(delta)
        result = on_chunk(delta)
        if inspect.isawaitable(result):
            await result
