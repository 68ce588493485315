"""
Rich printers for displaying chat results and streamed responses.
"""
import json
from typing import Any, List, Optional

from rich.console import Console, Group
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.syntax import Syntax
from rich.text import Text

from .types import ChatResult, ToolCall

console = Console()


class RichStreamPrinter:
    """
    Displays a streamed response live as text deltas arrive.

    Use :meth:`on_chunk` as the ``on_chunk`` callback of
    ``ChatClient.send_chat_message`` inside a ``with printer:`` block.

    Attributes:
        title: Title for the display panel
        code_theme: Theme for code blocks
        inline_code_theme: Theme for inline code
        refresh_rate: Refresh rate for Live display
        border_style: Border style while streaming
    """

    def __init__(
        self,
        title: str = "Streaming Response",
        code_theme: str = "coffee",
        inline_code_theme: str = "monokai",
        refresh_rate: int = 30,
        border_style: str = "blue",
        provider: Optional[str] = None,
    ):
        self.title = title
        self.code_theme = code_theme
        self.inline_code_theme = inline_code_theme
        self.refresh_rate = refresh_rate
        self.border_style = border_style
        self.provider = provider
        self._full_text = ""
        self._live: Optional[Live] = None

    def __enter__(self) -> "RichStreamPrinter":
        self._full_text = ""
        self._live = Live(
            self._panel(is_final=False),
            refresh_per_second=self.refresh_rate,
            console=console,
        )
        self._live.__enter__()
        return self

    def __exit__(self, *exc_info) -> None:
        if self._live is not None:
            self._live.update(self._panel(is_final=True))
            self._live.__exit__(*exc_info)
            self._live = None

    def on_chunk(self, delta: str) -> None:
        """Append a text delta and refresh the display."""
        self._full_text += delta
        if self._live is not None:
            self._live.update(self._panel(is_final=False))

    def _panel(self, is_final: bool) -> Panel:
        title = "[bold]Final Response[/bold]" if is_final else f"[bold]{self.title}[/bold]"
        if self.provider:
            title += f" [dim]({self.provider})[/dim]"

        if not self._full_text.strip():
            content: Any = Text("(waiting for response...)", style="dim italic")
        else:
            content = Markdown(
                self._full_text,
                code_theme=self.code_theme,
                inline_code_theme=self.inline_code_theme,
            )
        return Panel(
            content,
            title=title,
            border_style="green" if is_final else self.border_style,
            padding=(1, 2),
        )

    def get_full_text(self) -> str:
        """Get the full assembled text."""
        return self._full_text


class RichPrinter:
    """
    Displays a non-streaming ChatResult: markdown text, or the requested tool calls.

    Attributes:
        title: Title for the display panel
        show_tool_calls: Whether to show tool call arguments
        code_theme: Theme for code blocks
        inline_code_theme: Theme for inline code
        border_style: Border style for the panel
    """

    def __init__(
        self,
        title: str = "Response",
        show_tool_calls: bool = True,
        code_theme: str = "coffee",
        inline_code_theme: str = "monokai",
        border_style: str = "green",
    ):
        self.title = title
        self.show_tool_calls = show_tool_calls
        self.code_theme = code_theme
        self.inline_code_theme = inline_code_theme
        self.border_style = border_style

    def print_chat(self, result: ChatResult, provider: Optional[str] = None) -> ChatResult:
        """
        Display a chat result with rich formatting.

        Returns:
            The same result for chaining.
        """
        title = f"[bold]{self.title}[/bold]"
        if provider:
            title += f" [dim]({provider})[/dim]"

        console.print(
            Panel(
                self._build_content(result),
                title=title,
                border_style=self.border_style,
                padding=(1, 2),
            )
        )
        return result

    def print_error(self, message: str) -> None:
        console.print(Panel(Text(message, style="bold red"), title="[bold]Error[/bold]", border_style="red"))

    def _build_content(self, result: ChatResult) -> Any:
        tool_calls = result.get("tool_calls")
        if tool_calls:
            return self._build_tool_calls(tool_calls)

        text = result.get("text") or ""
        if not text.strip():
            return Text("(empty response)", style="dim italic")
        return Markdown(text, code_theme=self.code_theme, inline_code_theme=self.inline_code_theme)

    def _build_tool_calls(self, tool_calls: List[ToolCall]) -> Any:
        items: List[Any] = []
        for call in tool_calls:
            items.append(Text(f"{call['name']} ({call['id']})", style="bold yellow"))
            if self.show_tool_calls:
                items.append(
                    Syntax(
                        json.dumps(call.get("args") or {}, indent=2, ensure_ascii=False),
                        "json",
                        theme="lightbulb",
                        background_color="default",
                    )
                )
        return Group(*items)
