"""
Command line model management for Voix.

Commands:
  voix-models list              - Show every model and where it is installed
  voix-models download MODEL    - Download a model from the fastest mirror
  voix-models select MODEL      - Use MODEL for dictation
  voix-models clear             - Go back to the best installed model
  voix-models delete MODEL      - Remove a downloaded model
"""

from __future__ import annotations

import logging

import click

from config import JsonPreferenceStore, Settings
from errors import VoixError
from model_catalog import MODEL_CATALOG, require_model_spec
from model_downloader import ModelDownloader
from model_resolver import ModelResolver
from model_store import ModelStore
from models import DownloadProgress

MODEL_IDS = [spec.id for spec in MODEL_CATALOG]


def _build_services(settings: Settings) -> dict:
    store = ModelStore(settings.models_dir, settings.legacy_models_dir)
    return {
        "resolver": ModelResolver(store, JsonPreferenceStore()),
        "downloader": ModelDownloader(store, settings),
    }


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Show diagnostic logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Manage the whisper.cpp speech models used for dictation."""
    settings = Settings.from_env()
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, settings.log_level, logging.WARNING),
        format="%(levelname)s [%(name)s] %(message)s",
    )
    ctx.ensure_object(dict)
    if "resolver" not in ctx.obj:
        ctx.obj.update(_build_services(settings))


@cli.command("list")
@click.pass_obj
def list_models(obj: dict) -> None:
    """Show every model and where it is installed."""
    resolver: ModelResolver = obj["resolver"]
    effective = resolver.effective_model()
    for state in resolver.list_models():
        marker = click.style("*", fg="green") if state.id == effective else " "
        if state.installed:
            size = f"{(state.size_bytes or 0) / (1024 * 1024):.0f} MB"
            status = click.style("installed", fg="green")
            click.echo(f"{marker} {state.id:<9} {status}  {size:>8}  {state.path}")
        else:
            click.echo(f"{marker} {state.id:<9} {'-':<9}  {state.spec.size_mb:>5} MB  {state.spec.description}")
    dirs = resolver.directories()
    click.echo()
    click.echo(f"Models directory: {dirs['primary']}")
    if dirs["legacy"] is not None:
        click.echo(f"Legacy directory: {dirs['legacy']}")


@cli.command()
@click.argument("model_id", type=click.Choice(MODEL_IDS))
@click.pass_obj
def download(obj: dict, model_id: str) -> None:
    """Download MODEL_ID from the fastest reachable mirror."""
    downloader: ModelDownloader = obj["downloader"]
    spec = require_model_spec(model_id)
    length = spec.size_mb * 1024 * 1024

    with click.progressbar(length=length, label=f"Downloading {spec.label}") as bar:
        seen = {"bytes": 0}

        def on_progress(progress: DownloadProgress) -> None:
            if progress.total_bytes and bar.length != progress.total_bytes:
                bar.length = progress.total_bytes
            bar.update(progress.downloaded_bytes - seen["bytes"])
            seen["bytes"] = progress.downloaded_bytes

        try:
            downloader.download(model_id, on_progress=on_progress)
        except VoixError as exc:
            raise click.ClickException(f"{exc.user_message()} ({exc})") from exc
        finally:
            downloader.close()

    click.echo(click.style("✓ ", fg="green") + f"{spec.label} is installed")


@cli.command()
@click.argument("model_id")
@click.pass_obj
def select(obj: dict, model_id: str) -> None:
    """Use MODEL_ID for dictation."""
    resolver: ModelResolver = obj["resolver"]
    try:
        resolver.select_model(model_id)
    except VoixError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Using {model_id}")


@cli.command()
@click.pass_obj
def clear(obj: dict) -> None:
    """Forget the explicit choice and use the best installed model."""
    resolver: ModelResolver = obj["resolver"]
    resolver.clear_selection()
    effective = resolver.effective_model()
    click.echo(f"Using {effective}" if effective else "No model installed")


@cli.command()
@click.argument("model_id")
@click.confirmation_option(prompt="Delete this model?")
@click.pass_obj
def delete(obj: dict, model_id: str) -> None:
    """Remove a downloaded model."""
    resolver: ModelResolver = obj["resolver"]
    try:
        deleted = resolver.delete_model(model_id)
    except VoixError as exc:
        raise click.ClickException(str(exc)) from exc
    if not deleted:
        raise click.ClickException(f"{model_id} is not in the models directory")
    click.echo(f"Deleted {model_id}")


if __name__ == "__main__":
    cli()
