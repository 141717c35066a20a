from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import click

from caption_pipeline import __version__
from caption_pipeline.config import get_safe_config_report, get_settings
from caption_pipeline.errors import CaptionPipelineError
from caption_pipeline.jobs.models import JobStatus
from caption_pipeline.jobs.orchestrator import build_orchestrator
from caption_pipeline.jobs.store import JobStore
from caption_pipeline.settings_store import SettingsStore
from caption_pipeline.utils.log import set_log_level


def _echo_json(obj: Any) -> None:
    click.echo(json.dumps(obj, ensure_ascii=False, indent=2, default=str))


def _parse_sets(values: tuple[str, ...]) -> dict[str, str]:
    out: dict[str, str] = {}
    for item in values:
        if "=" not in item:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--set")
        k, v = item.split("=", 1)
        out[k.strip()] = v
    return out


def _settings_store() -> SettingsStore:
    s = get_settings()
    return SettingsStore(s.settings_db_path(), seed=s.secret.seed_values())


@click.group()
@click.version_option(__version__, prog_name="caption-pipeline")
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this invocation.")
def cli(log_level: str | None) -> None:
    """
    Caption pipeline: turn a song or voice note into a timed caption document.
    """
    if log_level:
        set_log_level(log_level)


@cli.command(name="run")
@click.option("--kind", type=click.Choice(["video", "voice"]), default="video", show_default=True)
@click.option("--ref", "record_ref", default=None, help="Record-store code to fetch input from.")
@click.option(
    "--data",
    "data_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON file with input fields (audioUrl, lyrics, transcript, ...).",
)
@click.option("--set", "sets", multiple=True, help="Override an input field: KEY=VALUE (repeatable).")
@click.option("--name", default=None, help="Job name.")
@click.option(
    "--output",
    "output_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the caption document here.",
)
def run_cmd(
    kind: str,
    record_ref: str | None,
    data_file: Path | None,
    sets: tuple[str, ...],
    name: str | None,
    output_path: Path | None,
) -> None:
    """
    Run one job in the foreground and wait for it to finish.
    """
    data: dict[str, Any] = {}
    if data_file is not None:
        loaded = json.loads(data_file.read_text(encoding="utf-8"))
        if not isinstance(loaded, dict):
            raise click.BadParameter("data file must contain a JSON object", param_hint="--data")
        data = loaded
    overrides = _parse_sets(sets)

    async def _main():
        orch = build_orchestrator()
        try:
            job = orch.create_and_run(kind, record_ref=record_ref, data=data, overrides=overrides, name=name)
            click.echo(f"Job {job.id} ({job.name}) started")
            return await orch.wait(job.id), orch.logs(job.id)
        finally:
            await orch.aclose()

    try:
        job, logs = asyncio.run(_main())
    except CaptionPipelineError as ex:
        raise click.ClickException(str(ex)) from ex

    for e in logs:
        extra = f" retries={e.retry_count}" if e.retry_count else ""
        dur = f" {e.duration_ms}ms" if e.duration_ms is not None else ""
        click.echo(f"  [{e.seq:>2}] {e.step:<15} {e.status.value:<9}{dur}{extra} {e.message}".rstrip())

    if job.status == JobStatus.COMPLETED:
        if output_path is not None and job.output is not None:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(json.dumps(job.output, ensure_ascii=False, indent=2), encoding="utf-8")
            click.echo(f"Document: {output_path}")
        click.echo(f"Completed in {job.duration_s or 0:.1f}s")
        return
    click.echo(f"Job ended {job.status.value}: {job.error or '-'}", err=True)
    raise SystemExit(1)


@cli.command(name="jobs")
@click.option("--limit", type=int, default=20, show_default=True)
@click.option("--json", "json_flag", is_flag=True, default=False, help="Print raw JSON.")
def jobs_cmd(limit: int, json_flag: bool) -> None:
    """List recent jobs."""
    store = JobStore(get_settings().jobs_db_path())
    jobs = store.list_recent(limit)
    if json_flag:
        _echo_json([{k: v for k, v in j.to_dict().items() if k != "output"} for j in jobs])
        return
    for j in jobs:
        click.echo(f"{j.id}  {j.status.value:<9} {j.progress:>3}%  {j.kind.value:<5} {j.name}")


@cli.command(name="logs")
@click.argument("job_id")
def logs_cmd(job_id: str) -> None:
    """Show the step log of one job."""
    store = JobStore(get_settings().jobs_db_path())
    try:
        job = store.require(job_id)
    except CaptionPipelineError as ex:
        raise click.ClickException(str(ex)) from ex
    click.echo(f"{job.name} [{job.status.value}] {job.progress}%")
    if job.error:
        click.echo(f"error: {job.error}")
    for e in store.logs(job_id):
        click.echo(
            f"  [{e.seq:>2}] {e.created_at} {e.step:<15} {e.status.value:<9} "
            f"progress={e.progress} retries={e.retry_count} {e.message}".rstrip()
        )


@cli.command(name="serve")
@click.option("--host", default=None, help="Bind host (default: HOST).")
@click.option("--port", type=int, default=None, help="Bind port (default: PORT).")
def serve_cmd(host: str | None, port: int | None) -> None:
    """Run the HTTP job-control API."""
    import uvicorn

    from caption_pipeline.server import create_app

    s = get_settings()
    uvicorn.run(create_app(), host=host or s.host, port=int(port or s.port), log_config=None)


@cli.group(name="config")
def config_group() -> None:
    """Inspect process config and runtime settings."""


@config_group.command(name="show")
def config_show() -> None:
    """Process config (secrets shown as SET/UNSET)."""
    _echo_json(get_safe_config_report())


@config_group.command(name="get")
@click.argument("category", required=False)
def config_get(category: str | None) -> None:
    """Runtime settings of one category, or the list of categories."""
    store = _settings_store()
    if not category:
        for c in store.categories():
            click.echo(c)
        return
    for row in store.by_category(category):
        value = row.get("value") or ""
        if row.get("type") == "password" and value:
            value = "***"
        click.echo(f"{row['key']} = {value}")


@config_group.command(name="set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str) -> None:
    """Update one runtime setting."""
    _settings_store().update(key, value)
    click.echo(f"{key} updated")


def main() -> None:
    cli(prog_name="caption-pipeline")


if __name__ == "__main__":
    main()
