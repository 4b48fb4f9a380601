"""Main entry point for Qogito."""

import asyncio
import signal
from pathlib import Path

import typer
import yaml

from qogito import __version__
from qogito.agent import Agent, create_agent
from qogito.assist import suggest_completion, transform_text
from qogito.cli import TerminalUI
from qogito.config import Config, set_config
from qogito.exceptions import ConfigurationError, QogitoError
from qogito.llm import create_client
from qogito.logging import configure_logging, log
from qogito.tools.sandbox import read_text_exact, write_text_exact

app = typer.Typer(help="Qogito - agentic coding assistant for llama.cpp servers")


def _load_config(config: str) -> Config:
    try:
        return Config.from_yaml(Path(config)) if config else Config.load()
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load config: {e}") from e


def _setup(config: str, verbose: bool = False) -> Config:
    """Load config, install it globally and configure logging."""
    try:
        cfg = _load_config(config)
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    set_config(cfg)
    configure_logging("DEBUG" if verbose else None)
    return cfg


async def _run_turn(agent: Agent, ui: TerminalUI, text: str) -> None:
    """Run one turn; Ctrl-C cancels it instead of exiting."""
    loop = asyncio.get_running_loop()
    handler_installed = False
    try:
        loop.add_signal_handler(signal.SIGINT, agent.cancel)
        handler_installed = True
    except (NotImplementedError, RuntimeError) as e:
        log.debug("SIGINT handler unavailable", error=str(e))
    try:
        await agent.handle_user_message(text)
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)
        ui.end_stream()


async def _connect(agent: Agent, ui: TerminalUI, url: str) -> bool:
    if agent.client.is_connected:
        ui.print_warning(f"Already connected to {agent.client.state.base_url}; use /disconnect first")
        return False
    try:
        state = await agent.client.connect(url)
    except QogitoError as e:
        ui.print_error(f"Could not connect to {url}: {e}")
        return False
    context = f"n_ctx {state.context_size}" if state.context_size else "context size unknown"
    ui.print_success(f"Connected to {state.display_name} ({context})")
    return True


def _save_config(cfg: Config, ui: TerminalUI, save_path: Path | None) -> None:
    try:
        path = cfg.save(save_path)
    except OSError as e:
        ui.print_error(f"Could not save settings: {e}")
        return
    log.debug("Settings saved", path=str(path))


async def _handle_action(
    action: str,
    arg: str,
    agent: Agent,
    ui: TerminalUI,
    cfg: Config,
    save_path: Path | None,
) -> None:
    if action == "MODE":
        agent.set_mode(arg)
        ui.print_success(f"Mode: {arg}")
    elif action == "CLEAR":
        agent.clear()
        ui.print_success("Conversation cleared")
    elif action == "CONNECT":
        url = arg or cfg.server.agentic_url
        if not url:
            ui.print_error("No server URL configured; use /connect <url>")
            return
        if await _connect(agent, ui, url) and arg:
            cfg.server.agentic_url = url
            _save_config(cfg, ui, save_path)
    elif action == "DISCONNECT":
        agent.client.disconnect()
        ui.print_success("Disconnected")
    elif action == "STATUS":
        ui.print_status(agent)
    elif action == "PROMPT":
        cfg.agent.system_prompt = arg
        _save_config(cfg, ui, save_path)
        ui.print_success("System prompt updated")
    elif action == "ALLOW_RUN":
        cfg.agent.allow_run_command = arg == "on"
        _save_config(cfg, ui, save_path)
        ui.print_success(f"run_command {'allowed' if cfg.agent.allow_run_command else 'disabled'}")


async def run_interactive(cfg: Config, url: str = "", save_path: Path | None = None) -> None:
    """Interactive chat session."""
    ui = TerminalUI()

    async def approve(command: str) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, ui.confirm_command, command)

    agent = create_agent(
        cfg,
        approval_callback=approve,
        on_entry=ui.on_entry,
        on_chunk=ui.on_chunk,
    )

    ui.print_welcome()
    if cfg.resolved_workspace_path() is None:
        ui.print_warning(f"Workspace folder not found: {cfg.workspace.path}")
    target = url or cfg.server.agentic_url
    if target:
        await _connect(agent, ui, target)

    try:
        while True:
            try:
                user_input = ui.prompt("> ").strip()
            except (KeyboardInterrupt, EOFError):
                log.info("Input closed")
                break
            if not user_input:
                continue

            if user_input.startswith("/"):
                result = ui.handle_special_command(user_input)
                if result is None:
                    continue
                action, arg = result
                if action == "EXIT":
                    break
                await _handle_action(action, arg, agent, ui, cfg, save_path)
                continue

            await _run_turn(agent, ui, user_input)
    finally:
        await agent.aclose()


@app.command()
def run(
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    url: str = typer.Option("", "--url", help="Agentic server URL"),
    mode: str = typer.Option("", "--mode", help="passive or active"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Start an interactive session."""
    cfg = _setup(config, verbose)
    if mode:
        if mode not in ("passive", "active"):
            typer.echo(f"Error: unknown mode {mode!r}", err=True)
            raise typer.Exit(2)
        cfg.agent.mode = mode  # type: ignore[assignment]

    save_path = Path(config) if config else None
    try:
        asyncio.run(run_interactive(cfg, url, save_path))
    except KeyboardInterrupt:
        log.info("Shutting down...")


@app.command()
def infill(
    path: Path = typer.Argument(..., help="File to complete"),
    offset: int = typer.Argument(..., help="Cursor offset in characters"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
) -> None:
    """Print an inline completion for a cursor position."""
    cfg = _setup(config)
    if not cfg.server.completion_url:
        typer.echo("Error: no completion server configured (server.completion_url)", err=True)
        raise typer.Exit(1)
    text = read_text_exact(path)

    async def _suggest() -> str:
        client = create_client(cfg)
        try:
            return await suggest_completion(client, cfg.server.completion_url, text, offset)
        finally:
            await client.aclose()

    typer.echo(asyncio.run(_suggest()))


@app.command()
def transform(
    path: Path = typer.Argument(..., help="File to transform"),
    instruction: str = typer.Option(..., "-i", "--instruction", help="How to transform the text"),
    write: bool = typer.Option(False, "--write", help="Overwrite the file with the result"),
    url: str = typer.Option("", "--url", help="Agentic server URL"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
) -> None:
    """Rewrite a file according to an instruction."""
    cfg = _setup(config)
    target = url or cfg.server.agentic_url
    if not target:
        typer.echo("Error: no server URL configured (server.agentic_url or --url)", err=True)
        raise typer.Exit(1)
    text = read_text_exact(path)

    async def _transform() -> str:
        client = create_client(cfg)
        try:
            await client.connect(target)
            return await transform_text(client, text, instruction)
        finally:
            await client.aclose()

    try:
        result = asyncio.run(_transform())
    except QogitoError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if write:
        write_text_exact(path, result)
        typer.echo(f"Wrote {path}")
    else:
        typer.echo(result)


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"Qogito v{__version__}")


if __name__ == "__main__":
    app()
