from __future__ import annotations

import json
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import typer

from shortsmith.config.settings import Settings
from shortsmith.domain.job import JobRecord, JobStatus
from shortsmith.domain.request import SubtitleStyle
from shortsmith.exceptions import ConfigurationError, ShortsmithError
from shortsmith.jobs import JobService
from shortsmith.services.materials import is_url
from shortsmith.services.segmenter import TextSegmenter, create_segmenter
from shortsmith.services.subtitles import SubtitleService
from shortsmith.services.tts import VoiceCatalog
from shortsmith.storage.store import JobStore
from shortsmith.utils.doctor import run_doctor
from shortsmith.utils.logging import configure_logging, get_logger
from shortsmith.worker.queue import JobQueue
from shortsmith.worker.worker import POLL_SECONDS, Worker

app = typer.Typer(add_completion=False)
log = get_logger(__name__)


@contextmanager
def _cli_errors() -> Iterator[None]:
    try:
        yield
    except ShortsmithError as exc:
        typer.echo(f"{exc.label()}: {exc.message}", err=True)
        raise typer.Exit(code=exc.exit_code)


def _settings(storage: str | None = None, log_level: str | None = None) -> Settings:
    settings = Settings()
    if storage is not None:
        settings.storage_path = storage
    configure_logging(log_level or settings.log_level)
    return settings


def _service(settings: Settings) -> JobService:
    return JobService(settings, JobStore(settings.storage_path), JobQueue(settings.queue_size))


def _load_request(path: Path) -> dict:
    """Read a request file; relative local material paths resolve against its directory."""
    if not path.exists():
        raise ConfigurationError(f"Request file not found: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Request file is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigurationError("Request file must contain a JSON object.")
    base = path.resolve().parent
    for material in payload.get("materials") or []:
        raw = material.get("path") if isinstance(material, dict) else None
        if raw and not is_url(raw) and not Path(raw).expanduser().is_absolute():
            material["path"] = str(base / raw)
    return payload


def _run_job(settings: Settings, payload: dict, *, detach: bool = False) -> JobRecord:
    service = _service(settings)
    record = service.submit(payload)
    typer.echo(f"Submitted job {record.id}")
    if detach:
        return record
    worker = Worker(settings, service.store, service.queue)
    worker.handle(service.queue.pop())
    return service.get(record.id)


def _feed_pending(service: JobService, stop: threading.Event, once: bool) -> None:
    queued: list[str] = []
    while not stop.is_set():
        queued = service.requeue_pending(skip=queued)
        if once:
            return
        stop.wait(POLL_SECONDS)


def _record_row(rec: JobRecord) -> str:
    created = rec.created_at.strftime("%Y-%m-%d %H:%M:%S")
    return f"{rec.id}\t{rec.status.value}\t{rec.progress}\t{created}\t{rec.result_path or '-'}"


@app.command()
def run(
    request_file: Path = typer.Argument(..., help="Job request JSON file."),
    detach: bool = typer.Option(False, "--detach", help="Only submit; leave the job to `shortsmith worker`."),
    storage: str = typer.Option(None, help="Storage directory (overrides config)."),
    log_level: str = typer.Option(None, help="Log level (overrides config)."),
) -> None:
    """Submit a job request and process it in this process."""
    with _cli_errors():
        settings = _settings(storage, log_level)
        payload = _load_request(request_file)
        rec = _run_job(settings, payload, detach=detach)

    if detach:
        typer.echo(f"Job {rec.id} pending")
        return
    if rec.status == JobStatus.SUCCESS:
        typer.echo(f"✅ Done. job_id={rec.id}")
        typer.echo(f"📦 Output: {rec.result_path}")
        return
    typer.echo(f"Job {rec.id} {rec.status.value}: {rec.error_message}", err=True)
    raise typer.Exit(code=1)


@app.command()
def worker(
    once: bool = typer.Option(False, "--once", help="Exit once the pending jobs are processed."),
    storage: str = typer.Option(None, help="Storage directory (overrides config)."),
    log_level: str = typer.Option(None, help="Log level (overrides config)."),
) -> None:
    """Process pending jobs from the store until interrupted."""
    with _cli_errors():
        settings = _settings(storage, log_level)
        service = _service(settings)
        consumer = Worker(settings, service.store, service.queue)
        stop = threading.Event()
        feeder = threading.Thread(
            target=_feed_pending,
            args=(service, stop, once),
            name="shortsmith-feeder",
            daemon=True,
        )
        feeder.start()
        try:
            consumer.run(until=(lambda: not feeder.is_alive() and len(service.queue) == 0) if once else None)
        except KeyboardInterrupt:
            typer.echo("Worker interrupted", err=True)
        finally:
            stop.set()


@app.command()
def jobs(
    page: int = typer.Option(1, help="Page number (1-based)."),
    limit: int = typer.Option(20, help="Jobs per page (max 100)."),
    storage: str = typer.Option(None, help="Storage directory (overrides config)."),
) -> None:
    """List jobs, newest first."""
    with _cli_errors():
        records, total = _service(_settings(storage)).list(page, limit)
    typer.echo(f"total={total}")
    typer.echo("id\tstatus\tprogress\tcreated_at\tresult")
    for rec in records:
        typer.echo(_record_row(rec))


@app.command()
def show(
    job_id: str = typer.Argument(..., help="Job id."),
    storage: str = typer.Option(None, help="Storage directory (overrides config)."),
) -> None:
    """Pretty-print one job record."""
    with _cli_errors():
        rec = _service(_settings(storage)).get(job_id)
    typer.echo(json.dumps(rec.model_dump(mode="json"), indent=2, ensure_ascii=False))


@app.command()
def cancel(
    job_id: str = typer.Argument(..., help="Job id."),
    storage: str = typer.Option(None, help="Storage directory (overrides config)."),
) -> None:
    """Cancel a job."""
    with _cli_errors():
        rec = _service(_settings(storage)).cancel(job_id)
    typer.echo(f"{rec.id}\t{rec.status.value}")


@app.command()
def delete(
    job_id: str = typer.Argument(None, help="Job id."),
    all_jobs: bool = typer.Option(False, "--all", help="Delete every job."),
    storage: str = typer.Option(None, help="Storage directory (overrides config)."),
) -> None:
    """Delete a job (or all jobs) together with its working directory."""
    if not job_id and not all_jobs:
        raise typer.BadParameter("Pass a job id or --all.")
    with _cli_errors():
        service = _service(_settings(storage))
        if all_jobs:
            count = service.delete_all()
            typer.echo(f"Deleted {count} job(s)")
            return
        service.delete(job_id)
    typer.echo(f"Deleted {job_id}")


@app.command()
def segment(
    text: str = typer.Argument(..., help="Script text to segment."),
    max_len: int = typer.Option(16, "--max-len", help="Maximum characters per line."),
    rules: bool = typer.Option(False, "--rules", help="Force rule-based segmentation."),
) -> None:
    """Show how a script would be split into subtitle lines."""
    with _cli_errors():
        settings = _settings()
        segmenter = TextSegmenter(client=None) if rules else create_segmenter(settings)
        lines = segmenter.segment(text, max_len)
    for line in lines:
        typer.echo(line)


@app.command()
def voices(
    provider: str = typer.Option("edge_tts", help="TTS provider name."),
    locale: str = typer.Option(None, help="Locale prefix to filter voices."),
    limit: int = typer.Option(20, help="Limit number of voices shown."),
    json_output: bool = typer.Option(False, "--json", help="Output voices as JSON."),
) -> None:
    """List available TTS voices."""
    with _cli_errors():
        voices_list = VoiceCatalog(_settings()).voices(provider, locale=locale)

    if limit is not None and limit > 0:
        voices_list = voices_list[:limit]

    if json_output:
        typer.echo(json.dumps([v.to_dict() for v in voices_list], indent=2, ensure_ascii=False))
        return

    typer.echo("Name\tGender\tLocale\tDisplayName")
    for v in voices_list:
        typer.echo(f"{v.name}\t{v.gender}\t{v.locale}\t{v.display_name}")


@app.command()
def preview(
    out: Path = typer.Option(Path("preview.png"), help="Output PNG path."),
    text: str = typer.Option("", help="Preview text."),
    style_file: Path = typer.Option(None, "--style", help="Subtitle style JSON file."),
    resolution: str = typer.Option("1080x1920", help="Frame size, WIDTHxHEIGHT."),
    background: str = typer.Option("000000", help="Background color (RRGGBB)."),
) -> None:
    """Render a subtitle style preview frame."""
    with _cli_errors():
        _settings()
        style = SubtitleStyle()
        if style_file is not None:
            try:
                style = SubtitleStyle.model_validate_json(style_file.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                raise ConfigurationError(f"Invalid style file {style_file}: {exc}") from exc
        path = SubtitleService().preview(
            out,
            style,
            text=text,
            resolution=resolution,
            background=background,
        )
    typer.echo(f"🖼️ Preview: {path}")


@app.command()
def config() -> None:
    """Print resolved config."""
    s = Settings()
    typer.echo(json.dumps(s.to_public_dict(), indent=2))


@app.command()
def doctor() -> None:
    """Run environment diagnostics."""
    with _cli_errors():
        settings = Settings()
        code = run_doctor(settings)
    raise typer.Exit(code=code)


def _main() -> None:
    app()


if __name__ == "__main__":
    _main()
