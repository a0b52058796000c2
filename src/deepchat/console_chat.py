"""Plain console chat mode for deepchat."""

from __future__ import annotations

import time
from typing import Optional

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel

from .config import Config
from .orchestrator.pipeline import ERROR_NOTICE, PipelineOrchestrator, StageStatus
from .state.conversation import Role, Turn
from .utils.usage_tracker import UsageTracker

STATUS_LABELS = {
    StageStatus.INITIALIZING: "Initializing agents...",
    StageStatus.DEEPENING: "Deepening analysis...",
    StageStatus.SYNTHESIZING: "Synthesizing final response...",
}

MODEL_LABEL = "Synthesizer Agent"


class ConsoleChat:
    """Sequential console chat experience."""

    def __init__(self, config: Optional[Config] = None, console: Optional[Console] = None) -> None:
        self.config = config or Config()
        self.console = console or Console()
        self.usage_tracker = UsageTracker()
        self.orchestrator = PipelineOrchestrator.from_config(
            self.config,
            observer=self._on_status,
            usage_tracker=self.usage_tracker,
        )
        self._run_started: Optional[float] = None

    async def run(self) -> None:
        """Start the console chat session."""
        self._print_header()
        click.echo("\n" + self._bold(self._color("Type /help for commands. Press Ctrl+C to exit.", "primary")))
        while True:
            try:
                click.echo(self._color("you> ", "accent"), nl=False)
                prompt = input()
            except (KeyboardInterrupt, EOFError):
                click.echo("\nExiting deepchat.")
                return

            prompt = prompt.strip()
            if not prompt:
                continue

            if prompt.startswith("/"):
                if not self._handle_command(prompt):
                    return
                continue

            await self.ask(prompt)

    async def ask(self, prompt: str) -> Optional[Turn]:
        """Run the pipeline for one prompt and render the resulting model turn."""
        self._run_started = time.monotonic()
        turn = await self.orchestrator.submit(prompt)
        elapsed = time.monotonic() - self._run_started
        self._run_started = None

        if turn is None:
            click.echo(self._muted("(submission ignored)"))
            return None

        click.echo(self._muted(f"[{elapsed:.1f}s]"))
        self._render_turn(turn)
        return turn

    def _on_status(self, status: StageStatus) -> None:
        elapsed = time.monotonic() - self._run_started if self._run_started else 0.0
        click.echo(self._muted(f"[{elapsed:5.1f}s] ") + self._color(STATUS_LABELS[status], "accent"))

    def _handle_command(self, command: str) -> bool:
        """Handle slash commands. Returns False to exit loop."""
        cmd = command.split(maxsplit=1)[0]

        if cmd in ("/exit", "/quit"):
            return False

        if cmd == "/help":
            self._print_help()
            return True

        if cmd == "/history":
            turns = self.orchestrator.turns
            if not turns:
                click.echo(self._muted("No messages yet."))
            for turn in turns:
                self._render_turn(turn)
            return True

        if cmd == "/clear":
            if self.orchestrator.reset():
                self.usage_tracker.reset()
                click.echo(self._color("Conversation cleared.", "primary"))
            else:
                click.echo(self._color("A run is in progress; try again when it finishes.", "warning"))
            return True

        if cmd == "/stats":
            stats = self.usage_tracker.get_stats()
            click.echo("Usage:")
            if stats:
                click.echo("\n".join(f"- {k}: {int(v)}" for k, v in stats.items()))
            else:
                click.echo("- no usage recorded yet")
            return True

        click.echo("Unknown command. Type /help for options.")
        return True

    def _render_turn(self, turn: Turn) -> None:
        if turn.role is Role.USER:
            click.echo(self._bold(self._color("You: ", "accent")) + turn.text)
            return
        if turn.text == ERROR_NOTICE:
            click.echo(self._color(turn.text, "warning"))
            return
        self.console.print(Panel(Markdown(turn.text), title=MODEL_LABEL, title_align="left"))

    def _print_help(self) -> None:
        click.echo(
            "\n".join(
                [
                    self._bold(self._color("Commands:", "primary")),
                    f"  {self._color('/help', 'accent'):15} Show this help",
                    f"  {self._color('/history', 'accent'):15} Show the conversation so far",
                    f"  {self._color('/clear', 'accent'):15} Start a new conversation",
                    f"  {self._color('/stats', 'accent'):15} Show token usage for this session",
                    f"  {self._color('/exit, /quit', 'accent'):15} Leave console mode",
                    "",
                    self._muted("Anything else is answered by the agents (4 initial, 5 deep-dive, 1 synthesizer)."),
                ]
            )
        )

    @staticmethod
    def _color(text: str, style: str) -> str:
        palette = {
            "primary": "bright_green",
            "accent": "bright_cyan",
            "output": "bright_white",
            "muted": "bright_black",
            "warning": "bright_yellow",
        }
        return click.style(text, fg=palette.get(style, "white"))

    def _muted(self, text: str) -> str:
        return self._color(text, "muted")

    @staticmethod
    def _bold(text: str) -> str:
        return click.style(text, bold=True)

    def _print_header(self) -> None:
        border = self._color("=" * 60, "muted")
        title = self._bold(self._color("deepchat console mode", "primary"))
        model = self._color(f"model: {self.config.get('model.name')}", "accent")
        click.echo(f"{border}\n{title}  [{model}]\n{border}")


async def run_console_chat() -> None:
    """Entry point used by the CLI."""
    await ConsoleChat().run()
