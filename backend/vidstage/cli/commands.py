"""CLI commands for vidstage using Typer and Rich.

Every command opens the pipeline in-process and, where it enqueues work,
runs the worker pool until the queue is idle:
- ingest: Register a local media file and run the full pipeline
- status: Show per-stage and per-variant progress for a video
- list: List videos in a table
- reprocess: Clear all stage state and ingest again
- regenerate-ai: Re-run only the AI highlights stage
- approve / reject: Record a reviewer decision for a held video
"""

import asyncio
import uuid
from pathlib import Path
from typing import Awaitable, Callable, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from vidstage.config import settings
from vidstage.errors import PipelineError
from vidstage.logging_setup import setup_logging
from vidstage.orchestrator import coordinator
from vidstage.orchestrator.context import PipelineContext, open_pipeline
from vidstage.orchestrator.worker import JobWorker
from vidstage.services.local_engines import sidecar_path

app = typer.Typer(name="vidstage", help="Staged video processing pipeline")
console = Console()


def _get_status_color(status: str) -> str:
    """Get Rich color name for a video, stage or variant status."""
    if status in ("published", "completed", "safe"):
        return "green"
    if status in ("failed", "rejected"):
        return "red"
    if status in ("quarantined", "flagged", "uncertain"):
        return "magenta"
    if status in ("in_progress", "encoding", "indexing", "moderating"):
        return "yellow"
    if status == "skipped":
        return "dim"
    return "blue"


def _colored(status: str) -> str:
    color = _get_status_color(status)
    return f"[{color}]{status}[/{color}]"


def _parse_video_id(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        console.print(f"[red]Error:[/red] Invalid video UUID: {value}")
        raise typer.Exit(code=1)


def _run(operation: Callable[[PipelineContext], Awaitable[None]], drain: bool = True) -> None:
    """Run an operation against a fresh pipeline, then drain the queue."""
    setup_logging(settings.logging.level, console)

    async def _main() -> None:
        async with open_pipeline(settings) as ctx:
            await operation(ctx)
            if drain:
                await _drain(ctx)

    try:
        asyncio.run(_main())
    except PipelineError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted. In-flight stages resume on the next run.[/yellow]")
        raise typer.Exit(code=130)


async def _drain(ctx: PipelineContext) -> None:
    async with JobWorker(ctx) as worker:
        with console.status("[bold green]Processing..."):
            await worker.run_until_idle()


async def _print_status(ctx: PipelineContext, video_id: uuid.UUID) -> None:
    status = await coordinator.get_processing_status(ctx, video_id)

    info_lines = [
        f"[bold]ID:[/bold] {status.video_id}",
        f"[bold]Video:[/bold] {_colored(status.video_status)}",
        f"[bold]Pipeline:[/bold] {_colored(status.overall_status)} ({status.progress_percentage}%)",
    ]
    if status.master_playlist_path:
        info_lines.append(f"[bold]Master playlist:[/bold] {status.master_playlist_path}")
    console.print(Panel("\n".join(info_lines), title="[bold]Video Status[/bold]", border_style="blue"))

    stages = Table(title="Stages")
    stages.add_column("Stage", style="cyan")
    stages.add_column("Status")
    stages.add_column("Progress", justify="right")
    stages.add_column("Attempts", justify="right")
    stages.add_column("Message")
    for job in status.jobs:
        message = job.last_error if job.status == "failed" else (job.progress_message or job.last_error or "")
        stages.add_row(job.stage, _colored(job.status), f"{job.progress}%", str(job.attempts), message or "")
    console.print(stages)

    if status.variants:
        variants = Table(title="Variants")
        variants.add_column("Quality", style="cyan")
        variants.add_column("Status")
        variants.add_column("Progress", justify="right")
        variants.add_column("Message")
        for v in status.variants:
            variants.add_row(
                v.quality, _colored(v.status), f"{v.progress}%", v.error_message or v.progress_message or ""
            )
        console.print(variants)


@app.command()
def ingest(
    media: Path = typer.Argument(..., exists=True, dir_okay=False, help="Local video file"),
    title: str = typer.Option("", "--title", "-t", help="Video title"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="Video description"),
    language: Optional[str] = typer.Option(None, "--language", "-l", help="Language hint (BCP-47)"),
    owner: str = typer.Option("", "--owner", help="Owner user id"),
    tag: list[str] = typer.Option([], "--tag", help="Tag (repeatable)"),
    group: list[str] = typer.Option([], "--group", help="Allowed group id (repeatable)"),
    user: list[str] = typer.Option([], "--user", help="Allowed user id (repeatable)"),
):
    """Register a local video and run it through the pipeline.

    A ``<media>.transcript.json`` file next to the video is uploaded with it
    and used by the stub transcription engine.
    """

    async def _ingest(ctx: PipelineContext) -> None:
        store = ctx.collaborators.store
        media_ref = f"uploads/{uuid.uuid4().hex}{media.suffix}"
        await store.put(media_ref, media.read_bytes())

        sidecar = media.with_name(media.name + ".transcript.json")
        if sidecar.exists():
            await store.put(sidecar_path(media_ref), sidecar.read_bytes())

        video = await coordinator.register_video(
            ctx,
            media_ref,
            title=title or media.stem,
            description=description,
            tags=tag,
            language_hint=language,
            owner_id=owner,
            allowed_group_ids=group,
            allowed_user_ids=user,
        )
        console.print(f"[green]Registered video:[/green] {video.id}")
        await coordinator.enqueue_ingest(ctx, video.id, media_ref, language)

        await _drain(ctx)
        await _print_status(ctx, video.id)

    _run(_ingest, drain=False)


@app.command()
def status(
    video_id: str = typer.Argument(..., help="Video UUID"),
):
    """Show per-stage and per-variant status for a video."""
    vid = _parse_video_id(video_id)
    _run(lambda ctx: _print_status(ctx, vid), drain=False)


@app.command(name="list")
def list_videos(
    status_filter: Optional[str] = typer.Option(None, "--status", "-s", help="Only videos in this status"),
):
    """List all videos."""

    async def _list(ctx: PipelineContext) -> None:
        videos = await coordinator.list_videos(ctx, status_filter)
        if not videos:
            console.print("[yellow]No videos found[/yellow]")
            return

        table = Table(title="Videos")
        table.add_column("ID", style="cyan")
        table.add_column("Title")
        table.add_column("Status")
        table.add_column("Duration", justify="right")
        table.add_column("Created")
        for v in videos:
            title_display = v.title if len(v.title) <= 40 else v.title[:37] + "..."
            duration = f"{v.duration_ms / 1000:.1f}s" if v.duration_ms else "-"
            table.add_row(
                str(v.id),
                title_display,
                _colored(v.status),
                duration,
                v.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            )
        console.print(table)

    _run(_list, drain=False)


@app.command()
def reprocess(
    video_id: str = typer.Argument(..., help="Video UUID"),
):
    """Discard all stage results for a video and run the pipeline again."""
    vid = _parse_video_id(video_id)

    async def _reprocess(ctx: PipelineContext) -> None:
        await coordinator.reprocess(ctx, vid)
        await _drain(ctx)
        await _print_status(ctx, vid)

    _run(_reprocess, drain=False)


@app.command(name="regenerate-ai")
def regenerate_ai(
    video_id: str = typer.Argument(..., help="Video UUID"),
):
    """Re-run AI highlight extraction and summarization."""
    vid = _parse_video_id(video_id)

    async def _regenerate(ctx: PipelineContext) -> None:
        await coordinator.regenerate_ai(ctx, vid)
        console.print(f"[green]Queued AI highlights for[/green] {vid}")

    _run(_regenerate)


@app.command()
def approve(
    video_id: str = typer.Argument(..., help="Video UUID"),
    reviewer: str = typer.Option(..., "--reviewer", "-r", help="Reviewer user id"),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Review notes"),
):
    """Approve a quarantined video and resume indexing."""
    vid = _parse_video_id(video_id)

    async def _approve(ctx: PipelineContext) -> None:
        await coordinator.approve_video(ctx, vid, reviewer, notes)
        console.print(f"[green]✓ Approved[/green] {vid}")

    _run(_approve)


@app.command()
def reject(
    video_id: str = typer.Argument(..., help="Video UUID"),
    reviewer: str = typer.Option(..., "--reviewer", "-r", help="Reviewer user id"),
    notes: str = typer.Option(..., "--notes", "-n", help="Reason for rejection"),
):
    """Reject a quarantined video."""
    vid = _parse_video_id(video_id)

    async def _reject(ctx: PipelineContext) -> None:
        await coordinator.reject_video(ctx, vid, reviewer, notes)
        console.print(f"[red]✗ Rejected[/red] {vid}")

    _run(_reject, drain=False)
