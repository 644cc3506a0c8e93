"""CLI interface for videoctl."""

import asyncio
import logging
import sys
from typing import Optional

import click
from pydantic import ValidationError

from . import __version__
from .config import ExecutionOptions, load_batch_config, merge_batch_config
from .estimator import estimate
from .exceptions import BatchConfigError, VideoctlError
from .executor import XAIVideoClient
from .models import (
    ASPECT_RATIOS,
    MAX_EDIT_VIDEO_DURATION,
    MODELS,
    RESOLUTIONS,
    BatchConfig,
    BatchReport,
    CostEstimate,
    JobKind,
    JobSpec,
    JobStatus,
    classify,
)
from .scheduler import BatchScheduler
from .settings import Settings
from .storage import R2Uploader, write_report

KIND_LABELS = {
    JobKind.GENERATION: "Text-to-Video",
    JobKind.IMAGE_TO_VIDEO: "Image-to-Video",
    JobKind.EDIT: "Video Edit",
}

OUTCOME_LABELS = {
    JobKind.GENERATION: "Generated",
    JobKind.IMAGE_TO_VIDEO: "Animated",
    JobKind.EDIT: "Edited",
}


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.WARNING,
        stream=sys.stderr,
        format="[%(asctime)s] %(name)s: %(message)s",
    )


def _require_api_key(settings: Settings) -> str:
    if not settings.xai_api_key:
        click.echo("✗ XAI_API_KEY environment variable is required", err=True)
        click.echo("  Get your API key from: https://console.x.ai/", err=True)
        sys.exit(1)
    return settings.xai_api_key


def _make_uploader(settings: Settings) -> Optional[R2Uploader]:
    if settings.r2_configured:
        return R2Uploader.from_settings(settings)
    return None


def _short(prompt: str, width: int = 60) -> str:
    return prompt[:width] + ("..." if len(prompt) > width else "")


def format_estimate_text(result: CostEstimate) -> str:
    """Render a cost estimate for the terminal."""
    lines = ["", "Cost Estimation", ""]
    lines.append(f"Total jobs: {result.total_jobs}")
    lines.append(f"Total video duration: {result.total_video_duration:g} seconds")
    cost = f"Estimated cost: ${result.estimated_cost_min:.4f}"
    if result.estimated_cost_min != result.estimated_cost_max:
        cost += f" - ${result.estimated_cost_max:.4f}"
    lines.append(cost)
    lines.append("")
    lines.append("Breakdown by type:")
    for item in result.breakdown:
        line = (
            f"  - {item.count} x {KIND_LABELS[item.type]}: "
            f"{item.total_duration:g}s = ${item.cost_min:.4f}"
        )
        if item.cost_min != item.cost_max:
            line += f" - ${item.cost_max:.4f}"
        lines.append(line)
    return "\n".join(lines) + "\n"


def format_report_text(report: BatchReport) -> str:
    """Render a batch report for the terminal."""
    ok = report.exit_code == 0
    lines = [
        "",
        f"{'✓' if ok else '✗'} Batch Video Generation "
        f"{'Completed Successfully' if ok else 'Completed with Issues'}",
        "",
        "=" * 50,
        f"Total Jobs:     {report.total}",
        f"  Succeeded:    {report.succeeded}",
        f"  Failed:       {report.failed}",
        f"  Cancelled:    {report.cancelled}",
        f"Duration:       {report.total_duration_ms / 1000:.2f}s",
        f"Started:        {report.started_at}",
        f"Finished:       {report.finished_at}",
    ]
    if report.estimated_cost is not None:
        lines.append(f"Estimated Cost: ${report.estimated_cost:.4f}")
    lines.append("=" * 50)

    succeeded = [r for r in report.results if r.status == JobStatus.COMPLETED]
    if succeeded:
        lines.extend(["", "Successfully Generated Videos:"])
        for job in succeeded:
            lines.append(f"\n{job.index}. {job.output_path or 'Unknown'}")
            lines.append(f'   {OUTCOME_LABELS[job.kind]}: "{_short(job.prompt)}"')
            if job.video_duration:
                lines.append(f"   Video Duration: {job.video_duration:g}s")
            if job.duration_ms:
                lines.append(f"   Processing Time: {job.duration_ms / 1000:.2f}s")
            if job.request_id:
                lines.append(f"   Request ID: {job.request_id}")

    failed = [r for r in report.results if r.status == JobStatus.FAILED]
    if failed:
        lines.extend(["", "Failed Jobs:"])
        for job in failed:
            lines.append(f'\n{job.index}. "{_short(job.prompt)}"')
            lines.append(f"   Error: {job.error}")
            lines.append(f"   Attempts: {job.attempts}")

    cancelled = [r for r in report.results if r.status == JobStatus.CANCELLED]
    if cancelled:
        lines.extend(["", "Cancelled Jobs:"])
        for job in cancelled:
            lines.append(f'\n{job.index}. "{_short(job.prompt)}"')
            lines.append(f"   Reason: {job.error or 'Timeout'}")

    return "\n".join(lines) + "\n"


async def _execute_batch(config: BatchConfig, options: ExecutionOptions, settings: Settings) -> BatchReport:
    api_key = settings.xai_api_key
    async with XAIVideoClient(api_key, uploader=_make_uploader(settings)) as client:
        scheduler = BatchScheduler(
            client,
            output_dir=settings.default_output_dir,
            allow_any_path=options.allow_any_path,
        )
        return await scheduler.run(config)


@click.group()
@click.version_option(__version__, prog_name="videoctl")
def cli():
    """videoctl - xAI Grok Imagine Video batch client"""
    try:
        settings = get_settings()
    except ValidationError as e:
        problems = "; ".join(
            f"{str(err['loc'][0]).upper()}: {err['msg']}" if err["loc"] else err["msg"]
            for err in e.errors()
        )
        click.echo(f"✗ Configuration Error: {problems}", err=True)
        sys.exit(1)
    _configure_logging(settings)


@cli.command()
@click.argument("config_path", type=click.Path(dir_okay=False))
@click.option("--output-dir", help="Override output directory from config")
@click.option("--format", "output_format", type=click.Choice(["text", "json"]), default="text", help="Output format")
@click.option("--timeout", type=click.IntRange(1000, 3600000), help="Timeout in milliseconds (default: 600000)")
@click.option("--max-concurrent", type=click.IntRange(1, 10), help="Max concurrent jobs (default: 2)")
@click.option("--poll-interval", type=click.IntRange(1000, 60000), help="Polling interval in milliseconds (default: 5000)")
@click.option("--max-poll-attempts", type=click.IntRange(1, 1000), help="Max polling attempts per job (default: 120)")
@click.option("--estimate-only", is_flag=True, help="Estimate cost without executing")
@click.option("--allow-any-path", is_flag=True, help="Allow any output path (for CI/CD)")
@click.option("--report-file", type=click.Path(dir_okay=False), help="Also write the JSON report to this file")
def batch(
    config_path: str,
    output_dir: Optional[str],
    output_format: str,
    timeout: Optional[int],
    max_concurrent: Optional[int],
    poll_interval: Optional[int],
    max_poll_attempts: Optional[int],
    estimate_only: bool,
    allow_any_path: bool,
    report_file: Optional[str],
):
    """Run a batch of video jobs from a JSON config file.

    Example:
        videoctl batch batch.json --max-concurrent 3
        videoctl batch batch.json --estimate-only --format json
    """
    settings = get_settings()
    options = ExecutionOptions(
        output_dir=output_dir,
        format=output_format,
        timeout=timeout,
        max_concurrent=max_concurrent,
        poll_interval=poll_interval,
        max_poll_attempts=max_poll_attempts,
        estimate_only=estimate_only,
        allow_any_path=allow_any_path,
        report_file=report_file,
    )

    try:
        config = merge_batch_config(load_batch_config(config_path), options, settings)

        if options.estimate_only:
            result = estimate(config)
            if options.format == "json":
                click.echo(result.model_dump_json(indent=2))
            else:
                click.echo(format_estimate_text(result))
            sys.exit(0)

        _require_api_key(settings)
        click.echo(f"Starting batch execution: {len(config.jobs)} jobs...", err=True)
        click.echo(
            f"Polling interval: {config.poll_interval}ms, Max attempts: {config.max_poll_attempts}",
            err=True,
        )
        report = asyncio.run(_execute_batch(config, options, settings))
    except BatchConfigError as e:
        click.echo(f"✗ Configuration Error: {e}", err=True)
        sys.exit(1)
    except VideoctlError as e:
        click.echo(f"✗ Error: {e}", err=True)
        sys.exit(1)

    if options.report_file:
        try:
            write_report(report, options.report_file)
        except OSError as e:
            click.echo(f"✗ Error: Failed to write report file: {e}", err=True)

    if options.format == "json":
        click.echo(report.model_dump_json(indent=2))
    else:
        click.echo(format_report_text(report))

    sys.exit(report.exit_code)


def _run_single(job: JobSpec, kind: JobKind, output_path: str) -> None:
    settings = get_settings()
    api_key = _require_api_key(settings)

    async def run():
        async with XAIVideoClient(api_key, uploader=_make_uploader(settings)) as client:
            return await client.execute(
                kind,
                job,
                output_path,
                settings.video_poll_interval / 1000,
                settings.video_max_poll_attempts,
            )

    try:
        result = asyncio.run(run())
    except VideoctlError as e:
        click.echo(f"✗ Error: {e}", err=True)
        sys.exit(1)

    verb = "edited" if kind == JobKind.EDIT else "generated"
    click.echo(f"✓ Video {verb} successfully: {result.output_path}")
    click.echo(f"  Request ID: {result.request_id}")
    if result.video_duration:
        click.echo(f"  Duration:   {result.video_duration:g} seconds")
    if result.video_url:
        click.echo(f"  Video URL:  {result.video_url}")
    if kind == JobKind.EDIT:
        click.echo(
            f"\nNote: The edited video has the same duration as the original "
            f"video (max {MAX_EDIT_VIDEO_DURATION} seconds)."
        )


def _build_job(**fields) -> JobSpec:
    try:
        return JobSpec(**{k: v for k, v in fields.items() if v is not None})
    except ValueError as e:
        click.echo(f"✗ Invalid job: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("prompt")
@click.option("--output-path", default="generated_video.mp4", help="Output file path")
@click.option("--model", type=click.Choice(MODELS), help="Model to use")
@click.option("--duration", type=click.IntRange(1, 15), help="Video duration in seconds (default: 5)")
@click.option("--aspect-ratio", type=click.Choice(ASPECT_RATIOS), help="Aspect ratio (default: 16:9)")
@click.option("--resolution", type=click.Choice(RESOLUTIONS), help="Resolution (default: 720p)")
@click.option("--image-url", help="Source image URL for image-to-video")
@click.option("--image-path", type=click.Path(exists=True, dir_okay=False), help="Local source image (uploaded to R2)")
def generate(prompt, output_path, model, duration, aspect_ratio, resolution, image_url, image_path):
    """Generate a single video from a text prompt or an image.

    Example:
        videoctl generate "A cat playing with a ball" --duration 5
    """
    job = _build_job(
        prompt=prompt,
        model=model,
        duration=duration,
        aspect_ratio=aspect_ratio,
        resolution=resolution,
        image_url=image_url,
        image_path=image_path,
    )
    _run_single(job, classify(job), output_path)


@cli.command()
@click.argument("prompt")
@click.option("--video-url", required=True, help="Source video URL (max 8.7 seconds)")
@click.option("--output-path", default="edited_video.mp4", help="Output file path")
@click.option("--model", type=click.Choice(MODELS), help="Model to use")
def edit(prompt, video_url, output_path, model):
    """Edit an existing video with a text instruction.

    Example:
        videoctl edit "Make the ball larger" --video-url https://example.com/v.mp4
    """
    job = _build_job(prompt=prompt, video_url=video_url, model=model)
    _run_single(job, classify(job), output_path)


@cli.group()
def config():
    """Inspect configuration"""
    pass


@config.command()
def show():
    """Show the configuration read from the environment.

    Example:
        videoctl config show
    """
    settings = get_settings()
    key = settings.xai_api_key
    masked = f"{key[:4]}...{key[-4:]}" if key and len(key) > 8 else ("set" if key else "not set")

    click.echo("\nCurrent Configuration:")
    click.echo(f"  XAI_API_KEY:             {masked}")
    click.echo(f"  OUTPUT_DIR:              {settings.default_output_dir}")
    click.echo(f"  VIDEO_POLL_INTERVAL:     {settings.video_poll_interval} ms")
    click.echo(f"  VIDEO_MAX_POLL_ATTEMPTS: {settings.video_max_poll_attempts}")
    click.echo(f"  DEBUG:                   {settings.debug}")
    if settings.r2_configured:
        click.echo(f"  R2 bucket:               {settings.r2_bucket_name}")
    else:
        click.echo(f"  R2 missing:              {', '.join(settings.missing_r2_vars())}")
    click.echo()


if __name__ == "__main__":
    cli()
