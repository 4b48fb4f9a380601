"""Terminal UI for Qogito."""

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm
from rich.table import Table

from qogito.agent import Agent
from qogito.history import DisplayEntry

TOOL_RESULT_PREVIEW_CHARS = 400

_ROLE_LABELS = {
    "user": "you",
    "assistant": "qogito",
    "tool_call": "tool call",
    "tool": "tool result",
    "compaction": "context summary",
}
_ROLE_STYLES = {
    "user": "bold cyan",
    "assistant": "bold green",
    "tool_call": "bold magenta",
    "tool": "magenta",
    "compaction": "bold yellow",
}


class TerminalUI:
    """Terminal UI using Rich."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()
        self._pending_role: str | None = None
        self._stream_open = False

    def print_welcome(self) -> None:
        self.console.print("[bold]=== Qogito ===[/bold]")
        self.console.print("Agentic coding assistant for llama.cpp servers.")
        self.console.print("Type '/help' for commands.\n")

    def print_help(self) -> None:
        """Print help message."""
        help_text = """
Commands:
  /help                   - Show this help message
  /mode passive|active    - Switch between read-only and editing tools
  /clear                  - Clear the conversation
  /connect [url]          - Connect to the agentic server
  /disconnect             - Drop the server connection
  /status                 - Show connection, mode and token usage
  /prompt <text>          - Replace and save the system prompt
  /allow-run on|off       - Offer the run_command tool in active mode
  /quit                   - Exit the application

  Press Ctrl-C while the assistant is working to stop it.
"""
        self.console.print(help_text, markup=False, highlight=False)

    def _label(self, role: str) -> str:
        style = _ROLE_STYLES.get(role, "bold")
        label = escape(f"[{_ROLE_LABELS.get(role, role)}]")
        return f"[{style}]{label}[/{style}]"

    def print_error(self, error: str) -> None:
        self.end_stream()
        self.console.print(f"[red]Error:[/red] {escape(error)}", highlight=False)

    def print_warning(self, warning: str) -> None:
        self.end_stream()
        self.console.print(f"[yellow]Warning:[/yellow] {escape(warning)}", highlight=False)

    def print_success(self, message: str) -> None:
        self.end_stream()
        self.console.print(f"[green]OK:[/green] {escape(message)}", highlight=False)

    def print_status(self, agent: Agent) -> None:
        """Print connection and conversation status."""
        client = agent.client
        table = Table(show_header=False, box=None)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("Server", client.state.base_url or "(not connected)")
        table.add_row("Model", client.display_name or "-")
        table.add_row("Mode", agent.mode)
        table.add_row("Run command", "allowed" if agent.config.agent.allow_run_command else "off")
        if client.budget.context_size > 0:
            usage = f"{client.budget.last_total_tokens} / {client.budget.context_size}"
        else:
            usage = f"{client.budget.last_total_tokens} (context size unknown)"
        table.add_row("Tokens", usage)
        table.add_row("Messages", str(len(agent.conversation.messages)))
        self.console.print(table)

    def on_entry(self, entry: DisplayEntry) -> None:
        """Render a transcript entry as the agent adds it."""
        if entry.error:
            self.print_error(entry.error)
            return
        if entry.failed:
            self.print_warning(entry.content)
            return

        self.end_stream()
        if entry.role in ("assistant", "compaction"):
            # printed lazily so a dropped empty entry leaves no trace
            self._pending_role = entry.role
            if entry.content:
                self.on_chunk(entry.content)
            return
        if entry.role == "user":
            return

        content = entry.content
        if entry.role == "tool" and len(content) > TOOL_RESULT_PREVIEW_CHARS:
            content = content[:TOOL_RESULT_PREVIEW_CHARS] + "..."
        self.console.print(f"{self._label(entry.role)} ", end="")
        self.console.print(content, markup=False, highlight=False)

    def on_chunk(self, chunk: str) -> None:
        """Print a streamed text fragment."""
        if self._pending_role is not None:
            self.console.print(f"{self._label(self._pending_role)} ", end="")
            self._pending_role = None
            self._stream_open = True
        self.console.print(chunk, end="", markup=False, highlight=False, soft_wrap=True)

    def end_stream(self) -> None:
        """Finish the current streamed line, if one is open."""
        self._pending_role = None
        if self._stream_open:
            self.console.print()
            self._stream_open = False

    def prompt(self, prompt_text: str = "> ") -> str:
        """Prompt for input."""
        self.end_stream()
        return self.console.input(prompt_text)

    def confirm_command(self, command: str) -> bool:
        """Ask whether a shell command may run."""
        self.end_stream()
        self.console.print("[bold yellow]Allow command to run?[/bold yellow]")
        self.console.print(f"$ {command}", markup=False, highlight=False)
        return Confirm.ask("Run", console=self.console, default=False)

    def handle_special_command(self, cmd: str) -> tuple[str, str] | None:
        """Parse a slash command.

        Returns:
            (action, argument) for commands the session loop handles, or None
            when the command was handled here or rejected
        """
        parts = cmd.strip().split(None, 1)
        command = parts[0].lower()
        args = parts[1].strip() if len(parts) > 1 else ""

        if command in ("/help", "/h", "/?"):
            self.print_help()
            return None
        if command == "/mode":
            if args.lower() not in ("passive", "active"):
                self.print_error("Usage: /mode passive|active")
                return None
            return "MODE", args.lower()
        if command == "/allow-run":
            if args.lower() not in ("on", "off"):
                self.print_error("Usage: /allow-run on|off")
                return None
            return "ALLOW_RUN", args.lower()
        if command == "/prompt":
            if not args:
                self.print_error("Usage: /prompt <text>")
                return None
            return "PROMPT", args
        if command == "/connect":
            return "CONNECT", args
        if command in ("/clear", "/disconnect", "/status"):
            return command[1:].upper(), ""
        if command in ("/exit", "/quit", "/q"):
            return "EXIT", ""

        self.print_error(f"Unknown command: {command}")
        return None
