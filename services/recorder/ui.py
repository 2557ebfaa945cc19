"""Command-line UI for the recorder coordinator.

The UI holds no recording state of its own: every command asks the
coordinator, and ``watch`` rebuilds its timer from the polled state.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

import typer

from .config import load_config
from .infrastructure.coordinator_client import (
    CoordinatorClient,
    CoordinatorRequestFailed,
    CoordinatorUnavailable,
)

app = typer.Typer(help="Record your screen and share it as a link")
logger = logging.getLogger(__name__)


def format_elapsed(seconds: float) -> str:
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    return f"{minutes:02d}:{secs:02d}"


def derive_elapsed(state: dict, fetched_at: float, now: float) -> float:
    """Elapsed recording time between polls, frozen while paused."""
    elapsed = float(state.get("elapsedSeconds") or 0.0)
    if state.get("isRecording") and not state.get("isPaused"):
        elapsed += max(0.0, now - fetched_at)
    return elapsed


def describe(state: dict, elapsed: Optional[float] = None) -> str:
    status = state.get("status", "idle")
    if state.get("isRecording"):
        shown = elapsed if elapsed is not None else state.get("elapsedSeconds", 0.0)
        label = "Paused" if state.get("isPaused") else "Recording"
        return f"{label} {format_elapsed(shown)}"
    parts = [status.capitalize()]
    if state.get("pendingArtifactBytes"):
        parts.append(f"recording ready to upload ({state['pendingArtifactBytes']} bytes)")
    if state.get("shareUrl"):
        parts.append(f"shared at {state['shareUrl']}")
    if state.get("lastError"):
        parts.append(f"error: {state['lastError']}")
    return ", ".join(parts)


def _client() -> CoordinatorClient:
    return CoordinatorClient(load_config().coordinator_url)


def _call(action):
    try:
        return action()
    except CoordinatorUnavailable as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc
    except CoordinatorRequestFailed as exc:
        typer.echo(f"Error: {exc.detail}", err=True)
        raise typer.Exit(code=1) from exc


@app.command()
def status() -> None:
    """Show whether a recording is in progress."""
    client = _client()
    typer.echo(describe(_call(client.state)))


@app.command()
def start(
    webcam: bool = typer.Option(False, "--webcam", help="Overlay the webcam"),
    mic: bool = typer.Option(False, "--mic", help="Record the microphone"),
) -> None:
    """Start recording the screen."""
    client = _client()
    state = _call(lambda: client.start(webcam=webcam, mic=mic))
    typer.echo(describe(state))


@app.command()
def pause() -> None:
    """Pause the current recording."""
    client = _client()
    typer.echo(describe(_call(client.pause)))


@app.command()
def resume() -> None:
    """Resume a paused recording."""
    client = _client()
    typer.echo(describe(_call(client.resume)))


@app.command()
def stop(
    upload: bool = typer.Option(False, "--upload", help="Upload right after stopping"),
    title: Optional[str] = typer.Option(None, help="Recording title"),
) -> None:
    """Stop recording and keep the result for upload."""
    client = _client()
    result = _call(client.stop)
    typer.echo(
        f"Stopped after {format_elapsed(result['durationSeconds'])} "
        f"({result['artifactBytes']} bytes)"
    )
    if upload:
        shared = _call(lambda: client.upload(title))
        typer.echo(f"Share link: {shared['shareUrl']}")


@app.command("upload")
def upload_command(
    title: Optional[str] = typer.Option(None, help="Recording title"),
) -> None:
    """Upload the last finished recording (also retries a failed upload)."""
    client = _client()
    shared = _call(lambda: client.upload(title))
    typer.echo(f"Share link: {shared['shareUrl']}")


@app.command()
def watch(
    interval: float = typer.Option(1.0, help="Seconds between coordinator polls"),
) -> None:
    """Show a live timer until the recording ends (Ctrl+C to detach)."""
    client = _client()
    state = _call(client.state)
    fetched_at = time.monotonic()
    try:
        while state.get("isRecording"):
            now = time.monotonic()
            typer.echo(f"\r{describe(state, derive_elapsed(state, fetched_at, now))}", nl=False)
            time.sleep(min(0.25, interval))
            if time.monotonic() - fetched_at >= interval:
                state = _call(client.state)
                fetched_at = time.monotonic()
    except KeyboardInterrupt:
        typer.echo("\nDetached; the recording continues in the background.")
        return
    typer.echo(f"\n{describe(state)}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
