"""CLI for gradesnap."""

import asyncio
import json
import logging
import uuid
from pathlib import Path

import click

# Load .env file if present
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass  # dotenv not installed, skip

from .client import AsyncClient, CanvasClient
from .config import GradesnapConfig
from .errors import ConfigError
from .logging import TraceLogger
from .models import CourseSnapshot, GradeSource, PageContext
from .pages import detect_page_context, format_grade_display, percentage_to_points
from .persistence import JsonFileStore
from .pipeline import PopulationPipeline, fetch_active_courses
from .store import SnapshotStore

DEFAULT_SESSION = ".gradesnap/session.json"
PAGE_CHOICES = [p.value for p in PageContext]


@click.group()
@click.version_option()
@click.option("--session", default=DEFAULT_SESSION, type=click.Path(), help="Session file")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx: click.Context, session: str, verbose: bool):
    """Grade snapshot cache - classify courses and cache current grades."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        config = GradesnapConfig.from_env()
    except ConfigError as e:
        raise click.UsageError(str(e))
    ctx.obj = {"config": config, "session": Path(session)}


def _open_store(ctx: click.Context, client=None) -> SnapshotStore:
    config: GradesnapConfig = ctx.obj["config"]
    storage = JsonFileStore(ctx.obj["session"], namespace=config.namespace)
    return SnapshotStore.create(client, storage=storage, config=config)


def _open_client(
    ctx: click.Context,
    trace: TraceLogger | None = None,
    max_workers: int | None = None,
) -> AsyncClient:
    config: GradesnapConfig = ctx.obj["config"]
    if not config.base_url:
        raise click.UsageError("GRADESNAP_BASE_URL is not set")
    # Pool size caps in-flight requests, so it tracks the worker count.
    return AsyncClient(
        CanvasClient.from_config(config, logger=trace),
        max_workers=max_workers or config.concurrency,
    )


def _describe(snapshot: CourseSnapshot, max_points: float) -> str:
    score = snapshot.score
    if score is None:
        return "no score"
    if snapshot.is_standards_based and snapshot.grade_source is GradeSource.ENROLLMENT:
        score = percentage_to_points(score, max_points)
    return format_grade_display(score, snapshot.letter_grade)


@cli.command("populate")
@click.option("--concurrency", "-c", type=int, help="Concurrent workers (default from config)")
@click.option("--trace", "trace_path", type=click.Path(), help="Write a JSONL trace here")
@click.pass_context
def populate(ctx: click.Context, concurrency: int | None, trace_path: str | None):
    """Populate snapshots for every active course."""
    config: GradesnapConfig = ctx.obj["config"]
    workers = concurrency if concurrency is not None else config.concurrency
    if workers < 1:
        raise click.UsageError("--concurrency must be >= 1")

    trace = None
    if trace_path:
        trace = TraceLogger(output_path=Path(trace_path), run_id=str(uuid.uuid4())[:8])

    client = _open_client(ctx, trace, max_workers=workers)
    store = _open_store(ctx, client)
    pipeline = PopulationPipeline(store, concurrency=workers, trace=trace)

    async def run():
        courses = await fetch_active_courses(client)
        return await pipeline.populate_all(courses)

    try:
        report = asyncio.run(run())
    except Exception as e:
        click.echo(f"✗ Failed: {e}", err=True)
        raise SystemExit(1)
    finally:
        client.close()
        if trace:
            trace.close()

    click.echo(
        f"Completed: {report.succeeded}/{report.processed} succeeded, "
        f"{report.failed} failed, {report.skipped} already cached"
    )
    if report.failed_course_ids:
        click.echo(f"Failed courses: {', '.join(report.failed_course_ids)}")


@cli.command("show")
@click.argument("course_id")
@click.option("--json", "as_json", is_flag=True, help="Print the raw snapshot")
@click.pass_context
def show(ctx: click.Context, course_id: str, as_json: bool):
    """Show the cached snapshot for a course."""
    store = _open_store(ctx)
    snapshot = store.get(course_id)
    if snapshot is None:
        click.echo(f"No snapshot for course {course_id}", err=True)
        raise SystemExit(1)

    if as_json:
        click.echo(json.dumps(snapshot.to_dict(), indent=2))
        return

    kind = "standards-based" if snapshot.is_standards_based else "traditional"
    max_points = ctx.obj["config"].max_points
    click.echo(f"{snapshot.course_name} ({snapshot.course_id}) [{kind}]")
    click.echo(f"  grade:  {_describe(snapshot, max_points)}")
    click.echo(f"  source: {snapshot.grade_source.value}")


@cli.command("refresh")
@click.argument("course_id")
@click.option("--name", required=True, help="Course name")
@click.option("--page", type=click.Choice(PAGE_CHOICES), help="Page context")
@click.option("--url", help="Derive the page context from an LMS URL")
@click.option("--force", is_flag=True, help="Refresh regardless of policy")
@click.pass_context
def refresh(
    ctx: click.Context,
    course_id: str,
    name: str,
    page: str | None,
    url: str | None,
    force: bool,
):
    """Refresh a course snapshot under the page-aware policy."""
    if page:
        context = PageContext(page)
    elif url:
        context = detect_page_context(url)
        if context is None:
            raise click.UsageError(f"No grade page context for URL: {url}")
    else:
        raise click.UsageError("Must specify either --page or --url")

    with _open_client(ctx) as client:
        store = _open_store(ctx, client)
        before = store.get(course_id)
        snapshot = asyncio.run(store.refresh(course_id, name, context, force=force))

    if snapshot is None:
        click.echo(f"No grade available for course {course_id}", err=True)
        raise SystemExit(1)

    verb = "Cached" if before is not None and snapshot == before else "Refreshed"
    max_points = ctx.obj["config"].max_points
    click.echo(f"{verb}: {snapshot.course_name} - {_describe(snapshot, max_points)}")


@cli.command("stats")
@click.pass_context
def stats(ctx: click.Context):
    """Summarize cached snapshots."""
    summary = _open_store(ctx).stats()
    for key, value in summary.to_dict().items():
        click.echo(f"{key}: {value}")


@cli.command("clear")
@click.pass_context
def clear(ctx: click.Context):
    """Remove every cached snapshot and classification."""
    removed = _open_store(ctx).clear_all()
    click.echo(f"Cleared {removed} entries")


if __name__ == "__main__":
    cli()
