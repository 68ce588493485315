import json

import pytest
from rich.console import Console

from llmrelay import cli, rich_llm_printer
from llmrelay.client import DEFAULT_MAX_TOOL_ITERATIONS
from llmrelay.errors import ConnectionTestError
from llmrelay.rich_llm_printer import RichPrinter, RichStreamPrinter


class TestParser:

    def test_chat_options(self):
        args = cli.build_parser().parse_args(["chat", "--stream", "--history", "h.json", "hi"])
        assert args.prompt == "hi"
        assert args.stream is True
        assert args.tools is False
        assert args.history == "h.json"
        assert args.max_iterations == DEFAULT_MAX_TOOL_ITERATIONS
        assert args.handler is cli._chat

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_config_file_preferred(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"provider": "gemini", "model": "gemini-pro"}))
        args = cli.build_parser().parse_args(["--config", str(path), "test"])

        config = cli._load_config(args)

        assert config.provider == "gemini"
        assert config.model == "gemini-pro"


class TestMain:

    def test_error_exit_code(self, monkeypatch, tmp_path):
        async def failing(args, config):
            raise ConnectionTestError("Connection test failed: Invalid key")

        parser = cli.build_parser()
        original = parser.parse_args

        def parse_args(argv):
            args = original(argv)
            args.handler = failing
            return args

        monkeypatch.setattr(parser, "parse_args", parse_args)
        monkeypatch.setattr(cli, "build_parser", lambda: parser)

        assert cli.main(["--env-file", str(tmp_path / "missing.env"), "test"]) == 1

    def test_unknown_provider_exit_code(self, tmp_path, monkeypatch):
        recording = Console(record=True, width=120)
        monkeypatch.setattr(rich_llm_printer, "console", recording)
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"provider": "mistral", "model": "m", "endpoint": "https://x"}))

        assert cli.main(["--config", str(path), "image", "a cat"]) == 1
        assert "Unknown provider: mistral" in recording.export_text()

    def test_invalid_env_value_exit_code(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LLMRELAY_TEMPERATURE", "warm")

        assert cli.main(["--env-file", str(tmp_path / "missing.env"), "test"]) == 1


class TestPrinters:

    @pytest.fixture
    def recorded(self, monkeypatch):
        recording = Console(record=True, width=80)
        monkeypatch.setattr(rich_llm_printer, "console", recording)
        return recording

    def test_print_text(self, recorded):
        result = {"text": "**Paris**", "tool_calls": None, "raw_response": {}, "sent_messages": []}

        assert RichPrinter().print_chat(result, provider="openai") is result

        output = recorded.export_text()
        assert "Paris" in output
        assert "(openai)" in output

    def test_print_tool_calls(self, recorded):
        result = {
            "text": None,
            "tool_calls": [{"id": "1", "name": "web_search", "args": {"query": "x"}}],
            "raw_response": {},
            "sent_messages": [],
        }

        RichPrinter().print_chat(result)

        output = recorded.export_text()
        assert "web_search (1)" in output
        assert '"query": "x"' in output

    def test_stream_printer_collects_deltas(self, recorded):
        with RichStreamPrinter(provider="gemini") as printer:
            printer.on_chunk("Hel")
            printer.on_chunk("lo")

        assert printer.get_full_text() == "Hello"
