"""MCP stdio server exposing single-video generation and editing as tools."""

import logging
import sys
from typing import Optional

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import ValidationError

from .exceptions import VideoctlError
from .executor import XAIVideoClient
from .models import (
    MAX_EDIT_VIDEO_DURATION,
    AspectRatio,
    ExecutionResult,
    JobKind,
    JobSpec,
    Model,
    Resolution,
    classify,
)
from .settings import Settings
from .storage import R2Uploader

logger = logging.getLogger(__name__)

mcp = FastMCP("grok-imagine-video")

# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def format_tool_result(kind: JobKind, result: ExecutionResult) -> str:
    """Render a finished job as the text returned to the MCP client."""
    verb = "edited" if kind == JobKind.EDIT else "generated"
    lines = [
        f"Video {verb} successfully: {result.output_path or 'unknown'}",
        "",
        "Details:",
        f"  - Request ID: {result.request_id}",
    ]
    if result.video_duration:
        lines.append(f"  - Duration: {result.video_duration:g} seconds")
    if result.video_url:
        lines.append(f"  - Video URL: {result.video_url}")
    if kind == JobKind.EDIT:
        lines.append("")
        lines.append(
            f"Note: The edited video has the same duration as the original "
            f"video (max {MAX_EDIT_VIDEO_DURATION} seconds)."
        )
    return "\n".join(lines)


def _build_job(**fields) -> JobSpec:
    try:
        return JobSpec(**{k: v for k, v in fields.items() if v is not None})
    except ValidationError as e:
        raise ToolError("; ".join(err["msg"].replace("Value error, ", "") for err in e.errors()))


async def _run_tool(job: JobSpec, output_path: str) -> str:
    settings = get_settings()
    if not settings.xai_api_key:
        raise ToolError("XAI_API_KEY environment variable is required")
    kind = classify(job)
    uploader = R2Uploader.from_settings(settings) if settings.r2_configured else None
    logger.debug("Tool call: %s %s", kind.value, job.model_dump(exclude_none=True))

    async with XAIVideoClient(settings.xai_api_key, uploader=uploader) as client:
        try:
            result = await client.execute(
                kind,
                job,
                output_path,
                settings.video_poll_interval / 1000,
                settings.video_max_poll_attempts,
            )
        except VideoctlError as e:
            logger.debug("Tool execution error: %s", e)
            action = "Video editing" if kind == JobKind.EDIT else "Video generation"
            raise ToolError(f"{action} failed: {e}") from e
    return format_tool_result(kind, result)


@mcp.tool()
async def generate_video(
    prompt: str,
    output_path: str = "generated_video.mp4",
    model: Optional[Model] = None,
    duration: Optional[int] = None,
    aspect_ratio: Optional[AspectRatio] = None,
    resolution: Optional[Resolution] = None,
    image_url: Optional[str] = None,
    image_path: Optional[str] = None,
) -> str:
    """Generate a new video from a text prompt using xAI Grok Imagine Video.

    Video duration is 1-15 seconds (default 5), resolution 720p or 480p,
    aspect ratio one of 16:9, 4:3, 1:1, 9:16, 3:4, 3:2, 2:3. Pass image_url,
    or image_path when R2 storage is configured, to animate an image.
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
    return await _run_tool(job, output_path)


@mcp.tool()
async def edit_video(
    prompt: str,
    video_url: str,
    output_path: str = "edited_video.mp4",
    model: Optional[Model] = None,
) -> str:
    """Edit an existing video using xAI Grok Imagine Video.

    The source video must be publicly accessible and at most 8.7 seconds
    long. The edited video keeps the duration of the original.
    """
    job = _build_job(prompt=prompt, video_url=video_url, model=model)
    return await _run_tool(job, output_path)


def main() -> None:
    """Console entry point: serve the tools over stdio."""
    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.WARNING,
        stream=sys.stderr,
        format="[%(asctime)s] %(name)s: %(message)s",
    )
    if not settings.xai_api_key:
        print(
            "Error: XAI_API_KEY environment variable is required.\n"
            "Please set it in your environment or .env file.\n"
            "Get your API key from: https://console.x.ai/",
            file=sys.stderr,
        )
        sys.exit(1)

    logger.debug("Starting xAI Grok Imagine Video MCP server")
    mcp.run()


if __name__ == "__main__":
    main()
