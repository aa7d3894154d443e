"""CLI entry point for inkbot."""

import asyncio
import logging
from pathlib import Path

import click
import uvicorn

from .config import DEFAULT_BASE_URL
from .core import ConnectionState
from .errors import StorageError, ValidationError
from .export import transcript_to_text
from .session import SessionController, create_controller

CHAT_HELP = """Commands:
  /save           save this conversation
  /new            start a new conversation
  /list           list saved conversations
  /load <id>      switch to a saved conversation
  /delete <id>    delete a saved conversation
  /export [path]  write the transcript to a text file
  /test           re-check the backend connection
  /url <url>      change the backend URL
  /quit           leave"""


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
def main(verbose: bool):
    """Chat with a text-generation backend and keep your conversations."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


@main.command()
@click.option("--port", default=8080, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
@click.option("--url", default=DEFAULT_BASE_URL, help="Backend base URL.")
def serve(port: int, host: str, url: str):
    """Start the local API."""
    from . import server

    server.configure(base_url=url)
    click.echo(f"Starting inkbot on http://{host}:{port} (backend {url})")
    uvicorn.run("inkbot.server:app", host=host, port=port, reload=False)


@main.command()
@click.option("--url", default=DEFAULT_BASE_URL, help="Backend base URL.")
def probe(url: str):
    """Check whether the backend is reachable."""
    controller = create_controller(base_url=url)
    state = asyncio.run(controller.check_connection())
    click.echo(f"{controller.base_url}: {state.label}")
    if state is not ConnectionState.CONNECTED:
        raise SystemExit(1)


@main.command("list")
def list_conversations():
    """List saved conversations, newest first."""
    controller = create_controller()
    records = controller.saved_conversations()
    if not records:
        click.echo("No saved conversations.")
        return
    for record in records:
        click.echo(f"{record.id}  {record.timestamp[:10]}  {record.title}")


@main.command()
@click.argument("record_id")
def show(record_id: str):
    """Print a saved conversation."""
    record = create_controller().store.get(record_id)
    if record is None:
        raise click.ClickException(f"No conversation with id {record_id}")
    click.echo(f"# {record.title}\n")
    click.echo(transcript_to_text(record.messages))


@main.command()
@click.argument("record_id")
def delete(record_id: str):
    """Delete a saved conversation."""
    controller = create_controller()
    if record_id not in controller.store:
        click.echo(f"No conversation with id {record_id}")
        return
    try:
        controller.delete(record_id)
    except StorageError as e:
        raise click.ClickException(str(e))
    click.echo(f"Deleted {record_id}")


@main.command()
@click.argument("record_id")
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), help="Output file.")
def export(record_id: str, output: Path | None):
    """Export a saved conversation as plain text."""
    controller = create_controller()
    try:
        controller.load_by_id(record_id)
    except KeyError:
        raise click.ClickException(f"No conversation with id {record_id}")
    path = output or Path(controller.export_filename())
    path.write_text(controller.export_text(), encoding="utf-8")
    click.echo(f"Wrote {path}")


@main.command()
@click.option("--url", default=DEFAULT_BASE_URL, help="Backend base URL.")
def chat(url: str):
    """Chat interactively in the terminal."""
    controller = create_controller(base_url=url)
    asyncio.run(_chat_loop(controller))


async def _chat_loop(controller: SessionController) -> None:
    state = await controller.check_connection()
    click.echo(f"Backend {controller.base_url}: {state.label}")
    click.echo("Type /help for commands.\n")

    while True:
        try:
            line = click.prompt("you", prompt_suffix="> ", default="", show_default=False)
        except (EOFError, click.Abort):
            click.echo()
            return

        line = line.strip()
        if not line:
            continue
        if line.startswith("/"):
            if not await _run_command(controller, line):
                return
            continue

        try:
            reply = await controller.submit_turn(line)
        except ValidationError as e:
            click.echo(str(e))
            continue
        if reply is not None:
            click.echo(f"\nassistant> {reply.content}\n")


async def _run_command(controller: SessionController, line: str) -> bool:
    """Handle a slash command. Returns False when the loop should stop."""
    name, _, arg = line.partition(" ")
    arg = arg.strip()

    if name in ("/quit", "/exit"):
        return False
    if name == "/help":
        click.echo(CHAT_HELP)
    elif name == "/new":
        controller.start_new()
        click.echo("Started a new conversation.")
    elif name == "/save":
        try:
            record = controller.save()
        except (ValidationError, StorageError) as e:
            click.echo(str(e))
        else:
            click.echo(f"Saved as {record.id}: {record.title}")
    elif name == "/list":
        records = controller.saved_conversations()
        if not records:
            click.echo("No saved conversations.")
        for record in records:
            marker = "*" if record.id == controller.active_id else " "
            click.echo(f"{marker} {record.id}  {record.title}")
    elif name == "/load":
        try:
            record = controller.load_by_id(arg)
        except KeyError:
            click.echo(f"No conversation with id {arg}")
        else:
            click.echo(f"Loaded {record.title}\n")
            click.echo(transcript_to_text(record.messages))
    elif name == "/delete":
        try:
            controller.delete(arg)
        except StorageError as e:
            click.echo(str(e))
        else:
            click.echo(f"Deleted {arg}")
    elif name == "/export":
        try:
            text = controller.export_text()
        except ValidationError as e:
            click.echo(str(e))
        else:
            path = Path(arg) if arg else Path(controller.export_filename())
            path.write_text(text, encoding="utf-8")
            click.echo(f"Wrote {path}")
    elif name == "/test":
        state = await controller.check_connection()
        click.echo(f"Backend {controller.base_url}: {state.label}")
    elif name == "/url":
        if not arg:
            click.echo(controller.base_url)
        else:
            controller.base_url = arg
            click.echo(f"Backend URL set to {controller.base_url}")
    else:
        click.echo(f"Unknown command {name}. Type /help for commands.")
    return True
