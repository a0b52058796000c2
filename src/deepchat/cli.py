"""deepchat CLI entry point."""

from __future__ import annotations

import asyncio

import click

from . import __version__


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context) -> None:
    """deepchat - multi-agent deliberation chat."""
    if ctx.invoked_subcommand is None:
        from .console_chat import run_console_chat

        asyncio.run(run_console_chat())


@main.command()
@click.argument("question")
def ask(question: str) -> None:
    """Answer a single QUESTION and exit."""
    from .console_chat import ConsoleChat

    chat = ConsoleChat()
    turn = asyncio.run(chat.ask(question))
    if turn is None or chat.orchestrator.last_error is not None:
        if chat.orchestrator.last_error is not None:
            click.echo(f"Pipeline failed: {chat.orchestrator.last_error}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
