"""
Pattern Relay - CLI Interface
Rich terminal front end for the pattern flow
"""

import html
import re
from pathlib import Path
from typing import Optional, Callable, Dict, List

from rich.console import Console
from rich.errors import MarkupError
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table
from rich.text import Text

from concurrency.locks import get_operation_guard
from core.logger import log_error
from engine.session import get_session_store
from interface.menus import Button
from interface.pattern_flow import FlowView, FlowState, PatternFlowController, get_pattern_flow
from patterns.catalog import get_pattern_catalog

CLI_USER_ID = "cli"

_STYLE_TAGS = {
    "b": "bold",
    "i": "italic",
    "u": "underline",
    "s": "strike",
    "code": "cyan",
    "pre": "cyan",
}

_BORDERS = {
    FlowState.ERROR: "red",
    FlowState.SHOWING_RESULT: "green",
    FlowState.SHOWING_OUTPUT_CHUNK: "green",
    FlowState.SHOWING_INPUT_CHUNK: "cyan",
    FlowState.DONE: "dim",
}


def html_to_markup(text: str) -> str:
    """Convert Telegram-style HTML to rich console markup."""
    markup = escape(text)
    for tag, style in _STYLE_TAGS.items():
        markup = re.sub(rf"<{tag}>", f"[{style}]", markup, flags=re.IGNORECASE)
        markup = re.sub(rf"</{tag}>", f"[/{style}]", markup, flags=re.IGNORECASE)
    markup = re.sub(r"</?[a-zA-Z][^>]*>", "", markup)
    return html.unescape(markup)


def render_text(text: str) -> Text:
    """Rich text for a view body, plain if the HTML is unbalanced."""
    try:
        return Text.from_markup(html_to_markup(text))
    except MarkupError:
        return Text(html.unescape(re.sub(r"</?[a-zA-Z][^>]*>", "", text)))


class PatternCLI:
    """
    Rich CLI interface for the pattern flow.

    Provides:
    - Text, multi-line paste and file input
    - Numbered menu buttons
    - Slash commands
    """

    def __init__(self, controller: Optional[PatternFlowController] = None):
        self.console = Console()
        self._controller = controller
        self._running = False
        self._buttons: List[Button] = []
        self._commands: Dict[str, Callable[[str], None]] = {}
        self._setup_commands()

    @property
    def controller(self) -> PatternFlowController:
        if self._controller is None:
            self._controller = get_pattern_flow()
        return self._controller

    def _setup_commands(self) -> None:
        """Register slash commands."""
        self._commands = {
            "/help": self._cmd_help,
            "/quit": self._cmd_quit,
            "/exit": self._cmd_quit,
            "/paste": self._cmd_paste,
            "/file": self._cmd_file,
            "/patterns": self._cmd_patterns,
            "/stats": self._cmd_stats,
        }

    def start(self) -> None:
        """Start the CLI loop."""
        self._running = True

        self.console.print()
        self.console.print(
            "[bold cyan]🧩 Send text to process it with a pattern. Type '/help' for commands.[/bold cyan]"
        )
        self.console.print()

        while self._running:
            try:
                prompt = "[bold green]Choose[/bold green]" if self._buttons else "[bold green]You[/bold green]"
                user_input = Prompt.ask(prompt)

                if not user_input.strip():
                    continue

                if user_input.startswith("/"):
                    self._handle_command(user_input)
                    continue

                if self._buttons and user_input.strip().isdigit():
                    self._press(int(user_input.strip()))
                    continue

                self._submit(user_input)

            except KeyboardInterrupt:
                self.console.print("\n[dim]Use /quit to exit[/dim]")
            except EOFError:
                self._running = False

    def stop(self) -> None:
        """Stop the CLI loop."""
        self._running = False

    def _submit(self, text: str) -> None:
        with self.console.status("[bold blue]Finding a pattern...[/bold blue]", spinner="dots"):
            view = self.controller.start(CLI_USER_ID, text)
        self._display_view(view)

    def _press(self, number: int) -> None:
        if not 1 <= number <= len(self._buttons):
            self.console.print(f"[yellow]Pick a number between 1 and {len(self._buttons)}[/yellow]")
            return

        button = self._buttons[number - 1]
        with self.console.status(f"[bold blue]{escape(button.text)}...[/bold blue]", spinner="dots"):
            view = self.controller.handle(CLI_USER_ID, button.action)
        if view is not None:
            self._display_view(view)

    def _display_view(self, view: FlowView) -> None:
        """Show a view and remember its buttons."""
        self.console.print(Panel(
            render_text(view.text),
            title=f"[bold]{view.state.value.replace('_', ' ').title()}[/bold]",
            title_align="left",
            border_style=_BORDERS.get(view.state, "blue"),
            padding=(0, 1)
        ))

        if view.document is not None:
            self.console.print(f"[green]💾 Saved to {escape(str(view.document.path))}[/green]")

        self._buttons = []
        if view.menu is not None and not view.terminal:
            number = 0
            for row in view.menu.rows:
                labels = []
                for button in row:
                    if button.is_noop:
                        labels.append(f"[dim]{escape(button.text)}[/dim]")
                    else:
                        number += 1
                        self._buttons.append(button)
                        labels.append(f"[cyan]{number}.[/cyan] {escape(button.text)}")
                self.console.print("   ".join(labels))

        self.console.print()

    def _handle_command(self, input_str: str) -> None:
        """Handle a slash command."""
        parts = input_str.split(maxsplit=1)
        cmd = parts[0].lower()
        args = parts[1] if len(parts) > 1 else ""

        if cmd in self._commands:
            self._commands[cmd](args)
        else:
            self.console.print(f"[yellow]Unknown command: {escape(cmd)}[/yellow]")
            self.console.print("[dim]Type /help for available commands[/dim]")

    def _cmd_help(self, args: str) -> None:
        """Show help."""
        table = Table(title="Available Commands", show_header=True)
        table.add_column("Command", style="cyan")
        table.add_column("Description")

        table.add_row("/help", "Show this help message")
        table.add_row("/quit, /exit", "Exit the program")
        table.add_row("/paste", "Enter multi-line text (finish with a line containing only '.')")
        table.add_row("/file <path>", "Process the contents of a text file")
        table.add_row("/patterns", "List available patterns")
        table.add_row("/stats", "Show session and operation statistics")
        table.add_row("<number>", "Press a menu button")

        self.console.print(table)

    def _cmd_quit(self, args: str) -> None:
        """Quit the program."""
        self.console.print("[bold]Goodbye![/bold]")
        self._running = False

    def _cmd_paste(self, args: str) -> None:
        """Collect multi-line input."""
        self.console.print("[dim]Paste text, then a line with a single '.' to finish[/dim]")
        lines = []
        while True:
            line = input()
            if line.strip() == ".":
                break
            lines.append(line)
        text = "\n".join(lines)
        if text.strip():
            self._submit(text)

    def _cmd_file(self, args: str) -> None:
        """Load input from a file."""
        if not args.strip():
            self.console.print("[yellow]Usage: /file <path>[/yellow]")
            return

        path = Path(args.strip()).expanduser()
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            log_error(f"Could not read {path}: {e}")
            return
        self.console.print(f"[dim]Loaded {len(text):,} chars from {escape(str(path))}[/dim]")
        self._submit(text)

    def _cmd_patterns(self, args: str) -> None:
        """List patterns by category."""
        catalog = get_pattern_catalog()
        table = Table(title=f"Patterns ({len(catalog)})", show_header=True)
        table.add_column("Pattern", style="cyan")
        table.add_column("Category")
        table.add_column("Description")

        for category in catalog.categories():
            for pattern in catalog.by_category(category):
                table.add_row(pattern.name, f"{category.emoji} {category.display_name}", pattern.description)

        self.console.print(table)

    def _cmd_stats(self, args: str) -> None:
        """Show statistics."""
        stats = get_operation_guard().get_stats()
        table = Table(title="Statistics", show_header=False)
        table.add_column("Metric", style="cyan")
        table.add_column("Value")

        table.add_row("Active sessions", str(len(get_session_store())))
        table.add_row("Pattern operations", str(stats["acquisitions"]))
        table.add_row("Rejected (in progress)", str(stats["rejections"]))
        table.add_row("Average duration", f"{stats['avg_hold_time']:.1f}s")
        table.add_row("Longest duration", f"{stats['max_hold_time']:.1f}s")

        self.console.print(table)


# Global CLI instance
_cli: Optional[PatternCLI] = None


def get_cli() -> PatternCLI:
    """Get the global CLI instance."""
    global _cli
    if _cli is None:
        _cli = PatternCLI()
    return _cli


def init_cli(controller: Optional[PatternFlowController] = None) -> PatternCLI:
    """Initialize the global CLI instance."""
    global _cli
    _cli = PatternCLI(controller)
    return _cli
