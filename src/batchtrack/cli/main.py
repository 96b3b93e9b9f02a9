"""batchtrack command line interface (Typer)."""

import json
import logging
from pathlib import Path

import typer

from batchtrack.config import AppConfig
from batchtrack.exceptions import BatchTrackError
from batchtrack.logging_config import setup_file_logging, setup_logging
from batchtrack.models import MessageInput, MessageStatus, Prompt

logger = logging.getLogger(__name__)

app = typer.Typer(help="Submit LLM batch jobs and reconcile their results")

PROVIDERS = ("anthropic", "gemini")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable DEBUG logging"),
    log_file: bool = typer.Option(False, "--log-file", help="Also write DEBUG logs to a file"),
) -> None:
    """Submit LLM batch jobs and reconcile their results."""
    setup_logging(logging.DEBUG if verbose else logging.INFO)
    if log_file:
        setup_file_logging(_get_config().log_dir)


def _get_config() -> AppConfig:
    return AppConfig()


def _get_storage(config: AppConfig):
    from batchtrack.infra.sql_storage import SQLStorage

    sqlite_path = config.sqlite_path
    if sqlite_path is not None:
        sqlite_path.parent.mkdir(parents=True, exist_ok=True)
    storage = SQLStorage(config.database_url)
    storage.init_schema()
    return storage


def _get_batcher(provider: str, config: AppConfig, storage):
    prompt = Prompt(name=config.prompt_name, text=config.prompt_text, cache=config.prompt_cache)

    if provider == "anthropic":
        import anthropic

        from batchtrack.infra.batchers.anthropic_batcher import AnthropicBatcher, anthropic_model

        client = anthropic.Anthropic(api_key=config.anthropic_api_key)
        model = anthropic_model(
            config.anthropic_model, {"max_tokens": config.anthropic_max_tokens}
        )
        return AnthropicBatcher(storage, client, model, prompt)

    if provider == "gemini":
        from google import genai

        from batchtrack.infra.batchers.gemini_batcher import GeminiBatcher, gemini_model
        from batchtrack.infra.object_store import GenaiFileStore

        client = genai.Client(api_key=config.gemini_api_key)
        return GeminiBatcher(
            storage, client, gemini_model(config.gemini_model), prompt, GenaiFileStore(client)
        )

    raise typer.BadParameter(f"Unknown provider '{provider}' (choose from {', '.join(PROVIDERS)})")


def _handle_error(e: BatchTrackError) -> None:
    typer.echo(f"Error: {e}", err=True)
    raise typer.Exit(code=1)


def _read_messages(path: Path) -> list[MessageInput]:
    """JSONL file, one {"id": ..., "content": ...} object per line.

    Raises ValueError naming the offending line.
    """
    messages = []
    with open(path, encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
                messages.append(MessageInput(id=str(data["id"]), content=data["content"]))
            except (ValueError, KeyError, TypeError) as e:
                raise ValueError(f"{path}:{lineno}: not an {{id, content}} object ({e!r})") from e
    return messages


@app.command("init-db")
def init_db() -> None:
    """Create the batch and message tables."""
    config = _get_config()
    try:
        storage = _get_storage(config)
    except BatchTrackError as e:
        _handle_error(e)
        return
    storage.close()
    typer.echo(f"Initialized {config.database_url}")


@app.command()
def submit(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSONL of {id, content}"),
    provider: str = typer.Option("anthropic", "--provider", "-p", help="anthropic | gemini"),
) -> None:
    """Submit every message of PATH as one batch."""
    config = _get_config()
    try:
        messages = _read_messages(path)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    if not messages:
        typer.echo("No messages to submit", err=True)
        raise typer.Exit(code=1)

    try:
        storage = _get_storage(config)
        batch_id = _get_batcher(provider, config, storage).create(messages)
    except BatchTrackError as e:
        _handle_error(e)
        return
    typer.echo(f"Submitted batch {batch_id} ({len(messages)} messages)")


@app.command()
def poll(
    provider: str = typer.Option("anthropic", "--provider", "-p", help="anthropic | gemini"),
    limit: int = typer.Option(None, "--limit", "-n", help="Max batches to poll"),
) -> None:
    """Poll random unfinished batches and reconcile the ones that ended."""
    from batchtrack.services.poller import poll_batches

    config = _get_config()

    def on_value(custom_id: str, text: str) -> None:
        typer.echo(f"{custom_id}\tsucceeded\t{len(text)} chars")

    def on_error(custom_id: str, kind: str) -> None:
        typer.echo(f"{custom_id}\t{kind}")

    try:
        storage = _get_storage(config)
        report = poll_batches(
            storage,
            _get_batcher(provider, config, storage),
            limit if limit is not None else config.poll_limit,
            on_value,
            on_error,
        )
    except BatchTrackError as e:
        _handle_error(e)
        return

    typer.echo(
        f"Polled {len(report.polled)} batches: "
        f"{len(report.ended)} ended, {len(report.failed)} failed"
    )
    if report.failed:
        raise typer.Exit(code=1)


@app.command()
def status(batch_id: str = typer.Argument(..., help="Batch id")) -> None:
    """Show a batch and how many of its messages are in each status."""
    config = _get_config()
    try:
        storage = _get_storage(config)
        batch = storage.get_batch(batch_id)
        if batch is None:
            typer.echo(f"Batch {batch_id} not found", err=True)
            raise typer.Exit(code=1)
        counts = {s.value: len(storage.message_ids(batch_id, s)) for s in MessageStatus}
    except BatchTrackError as e:
        _handle_error(e)
        return

    typer.echo(f"{batch.id}: {batch.status.value}")
    for name, count in counts.items():
        if count:
            typer.echo(f"  {name}: {count}")
