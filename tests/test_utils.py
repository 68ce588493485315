import asyncio

import pytest

from llmrelay.cancellation import AbortHandle
from llmrelay.errors import (
    ClientAPIError, LLMRelayError, RequestCancelledError, RetryableAPIError,
    classify_error, error_from_response, extract_error_message,
)
from llmrelay.retry import RetryPolicy, with_retry
from llmrelay.types import ProviderConfig
from llmrelay.utils import (
    SSEDecoder, decode_arguments, dig, mask_token, parse_sse_payload,
    resolve_model_path, sanitize_config, split_system_message, with_system_prompt,
)


class TestDig:

    def test_nested_path(self):
        data = {"choices": [{"message": {"content": "hi"}}]}
        assert dig(data, "choices", 0, "message", "content") == "hi"

    def test_missing_values_are_none(self):
        data = {"choices": []}
        assert dig(data, "choices", 0, "message") is None
        assert dig(data, "missing", "deeper") is None
        assert dig(None, "a") is None
        assert dig({"a": "text"}, "a", 0) is None


class TestDecodeArguments:

    def test_json_string(self):
        assert decode_arguments('{"query": "x"}') == {"query": "x"}

    def test_malformed_and_empty(self):
        assert decode_arguments("{not json") == {}
        assert decode_arguments("") == {}
        assert decode_arguments(None) == {}
        assert decode_arguments("[1, 2]") == {}

    def test_dict_passthrough(self):
        assert decode_arguments({"a": 1}) == {"a": 1}


class TestMessages:

    def test_system_prompt_prepended(self):
        config = ProviderConfig(system_prompt="  Be terse. ")
        messages = [{"role": "user", "content": "hi"}]

        result = with_system_prompt(messages, config)

        assert result == [{"role": "system", "content": "Be terse."}, *messages]
        assert messages == [{"role": "user", "content": "hi"}]

    def test_blank_prompt_ignored(self):
        messages = [{"role": "user", "content": "hi"}]
        assert with_system_prompt(messages, ProviderConfig(system_prompt="   ")) == messages

    def test_split_system_message(self):
        system, rest = split_system_message([
            {"role": "system", "content": "S"},
            {"role": "user", "content": "hi"},
        ])
        assert system == "S"
        assert rest == [{"role": "user", "content": "hi"}]


class TestSecrets:

    @pytest.mark.parametrize("token,masked", [
        ("sk-1234567890abcd", "sk-1...abcd"),
        ("short", "****"),
        ("", ""),
        (None, None),
    ])
    def test_mask_token(self, token, masked):
        assert mask_token(token) == masked

    def test_sanitize_config(self):
        config = ProviderConfig(token="sk-1234567890abcd", search_api_key="BSA-secret-key")
        data = sanitize_config(config)
        assert data["token"] == "sk-1...abcd"
        assert data["search_api_key"] == "BSA-...-key"
        assert config.token == "sk-1234567890abcd"

    def test_resolve_model_path(self):
        assert resolve_model_path("/models/{model}:generateContent", "gemini-pro") == (
            "/models/gemini-pro:generateContent"
        )


class TestSSEDecoder:

    def test_lines_split_across_chunks(self):
        decoder = SSEDecoder()
        assert decoder.feed('data: {"a":') == []
        assert decoder.feed(' 1}\n\ndata: {"b": 2}\n') == ['{"a": 1}', '{"b": 2}']

    def test_ignores_other_fields_and_done(self):
        decoder = SSEDecoder()
        payloads = decoder.feed("event: ping\r\n: comment\ndata: [DONE]\ndata: {}\r\n")
        assert payloads == ["{}"]

    def test_flush_unterminated_line(self):
        decoder = SSEDecoder()
        decoder.feed('data: {"c": 3}')
        assert decoder.flush() == ['{"c": 3}']
        assert decoder.flush() == []

    def test_malformed_payload_skipped(self, caplog):
        assert parse_sse_payload("{oops") is None
        assert parse_sse_payload('{"ok": true}') == {"ok": True}
        assert "Failed to parse SSE data" in caplog.text


class TestErrors:

    def test_extract_error_message(self):
        assert extract_error_message(b'{"error": {"message": "Nested"}}', 400, "Bad Request") == "Nested"
        assert extract_error_message(b'{"message": "Flat"}', 400, "Bad Request") == "Flat"
        assert extract_error_message(b"<html>", 502, "Bad Gateway") == "API Error: 502 Bad Gateway"
        assert extract_error_message(b"{}", 418, "") == "API Error: 418"

    @pytest.mark.parametrize("status,error_type", [
        (400, ClientAPIError),
        (401, ClientAPIError),
        (404, ClientAPIError),
        (429, RetryableAPIError),
        (500, RetryableAPIError),
        (503, RetryableAPIError),
    ])
    def test_error_from_response(self, status, error_type):
        error = error_from_response(status, "", b"")
        assert type(error) is error_type
        assert error.status_code == status

    def test_classify_error(self):
        assert classify_error(RequestCancelledError("x")) == "cancelled"
        assert classify_error(ClientAPIError("x")) == "client"
        assert classify_error(RetryableAPIError("x")) == "retryable"
        assert classify_error(LLMRelayError("x")) == "fatal"
        assert classify_error(KeyError("x")) == "fatal"


class TestRetry:

    def test_policy_validation(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(base_delay_s=-1)

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        attempts = []

        async def operation():
            attempts.append(1)
            if len(attempts) < 3:
                raise RetryableAPIError("busy", status_code=503)
            return "ok"

        result = await with_retry(operation, AbortHandle(), RetryPolicy(base_delay_s=0))

        assert result == "ok"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_exhausted_raises_last_error(self):
        attempts = []

        async def operation():
            attempts.append(1)
            raise RetryableAPIError(f"attempt {len(attempts)}")

        with pytest.raises(RetryableAPIError, match="attempt 2"):
            await with_retry(operation, AbortHandle(), RetryPolicy(max_attempts=2, base_delay_s=0))

    @pytest.mark.asyncio
    async def test_unexpected_errors_not_retried(self):
        attempts = []

        async def operation():
            attempts.append(1)
            raise KeyError("boom")

        with pytest.raises(KeyError):
            await with_retry(operation, AbortHandle(), RetryPolicy(base_delay_s=0))
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_aborted_handle_never_runs(self):
        abort = AbortHandle()
        abort.abort()
        attempts = []

        async def operation():
            attempts.append(1)

        with pytest.raises(RequestCancelledError):
            await with_retry(operation, abort)
        assert attempts == []


class TestAbortHandle:

    @pytest.mark.asyncio
    async def test_run_returns_result(self):
        async def work():
            return 42

        assert await AbortHandle().run(work()) == 42

    @pytest.mark.asyncio
    async def test_abort_tears_down_awaitable(self):
        abort = AbortHandle()
        started = asyncio.Event()
        cancelled = asyncio.Event()

        async def work():
            started.set()
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        task = asyncio.create_task(abort.run(work()))
        await started.wait()
        abort.abort()

        with pytest.raises(RequestCancelledError):
            await asyncio.wait_for(task, timeout=1)
        assert cancelled.is_set()
        assert abort.aborted
