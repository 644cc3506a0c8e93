"""xAI Grok Imagine Video client: create a job, poll it, download the result."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from .exceptions import JobExecutionError
from .models import (
    ASPECT_RATIOS,
    DEFAULT_ASPECT_RATIO,
    DEFAULT_DURATION,
    DEFAULT_MAX_POLL_ATTEMPTS,
    DEFAULT_MODEL,
    DEFAULT_RESOLUTION,
    MAX_DURATION,
    MIN_DURATION,
    MODELS,
    RESOLUTIONS,
    ExecutionResult,
    JobKind,
    JobSpec,
)

logger = logging.getLogger(__name__)

XAI_API_BASE = "https://api.x.ai/v1"

DEFAULT_POLL_SECONDS = 5.0


def unique_file_path(path: Path) -> Path:
    """Return ``path`` or the first ``name_N.ext`` sibling that does not exist."""
    candidate = path
    counter = 0
    while candidate.exists():
        counter += 1
        candidate = path.with_name(f"{path.stem}_{counter}{path.suffix}")
    if counter:
        logger.debug("Generated unique path: %s", candidate)
    return candidate


def prepare_output_path(output_path: str) -> Path:
    """Create the parent directory and pick a path that will not overwrite anything."""
    path = Path(output_path)
    if not path.is_absolute():
        path = Path.cwd() / path
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        raise JobExecutionError(f"Cannot create output directory: {path.parent}")
    return unique_file_path(path)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = {}
    detail = body.get("error", {}) if isinstance(body, dict) else {}
    if isinstance(detail, dict) and detail.get("message"):
        return detail["message"]
    if isinstance(detail, str) and detail:
        return detail
    return response.reason_phrase or "Unknown error"


def _json_object(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        raise JobExecutionError(f"Invalid response from API: {response.text[:200]!r}")
    if not isinstance(data, dict):
        raise JobExecutionError(
            f"Invalid response from API: expected an object, got {type(data).__name__}"
        )
    return data


def _video_of(result: Dict[str, Any]) -> Dict[str, Any]:
    video = result.get("video")
    return video if isinstance(video, dict) else {}


def _raise_for_api_error(response: httpx.Response) -> None:
    if response.is_success:
        return
    status = response.status_code
    if status == 401:
        message = "Authentication failed. Please check your XAI_API_KEY environment variable."
    elif status == 403:
        message = "Access denied. Please check your API key permissions."
    elif status == 400:
        message = f"Bad request: {_error_message(response)}"
    elif status == 429:
        message = "Rate limit exceeded. Please wait and try again."
    else:
        message = f"API error: {_error_message(response)}"
    raise JobExecutionError(f"HTTP {status}: {message}", status_code=status)


class XAIVideoClient:
    """Executes video jobs against the xAI API.

    Use as an async context manager; it owns the underlying ``httpx.AsyncClient``
    unless one is passed in.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = XAI_API_BASE,
        uploader: Any = None,
        http_client: Optional[httpx.AsyncClient] = None,
        request_timeout: float = 60.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.uploader = uploader
        self._owns_client = http_client is None
        self.http = http_client if http_client is not None else httpx.AsyncClient(timeout=request_timeout)

    async def __aenter__(self) -> "XAIVideoClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

    async def execute(
        self,
        kind: JobKind,
        job: JobSpec,
        output_path: str,
        poll_interval: float = DEFAULT_POLL_SECONDS,
        max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
    ) -> ExecutionResult:
        """Run one job to completion. Raises JobExecutionError on any failure."""
        if kind == JobKind.EDIT:
            return await self.edit(job, output_path, poll_interval, max_poll_attempts)
        return await self.generate(job, output_path, poll_interval, max_poll_attempts)

    async def generate(
        self,
        job: JobSpec,
        output_path: str,
        poll_interval: float = DEFAULT_POLL_SECONDS,
        max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
    ) -> ExecutionResult:
        """Generate a video from a prompt, optionally animating an image."""
        model = job.model or DEFAULT_MODEL
        duration = job.duration or DEFAULT_DURATION
        aspect_ratio = job.aspect_ratio or DEFAULT_ASPECT_RATIO
        resolution = job.resolution or DEFAULT_RESOLUTION

        if model not in MODELS:
            raise JobExecutionError(f"Invalid model: {model}. Must be one of: {', '.join(MODELS)}")
        if not MIN_DURATION <= duration <= MAX_DURATION:
            raise JobExecutionError(
                f"Invalid duration: {duration}. Must be between {MIN_DURATION} and {MAX_DURATION} seconds"
            )
        if aspect_ratio not in ASPECT_RATIOS:
            raise JobExecutionError(
                f"Invalid aspect_ratio: {aspect_ratio}. Must be one of: {', '.join(ASPECT_RATIOS)}"
            )
        if resolution not in RESOLUTIONS:
            raise JobExecutionError(
                f"Invalid resolution: {resolution}. Must be one of: {', '.join(RESOLUTIONS)}"
            )

        path = prepare_output_path(output_path)
        body: Dict[str, Any] = {
            "model": model,
            "prompt": job.prompt,
            "duration": duration,
            "aspect_ratio": aspect_ratio,
            "resolution": resolution,
        }

        try:
            image_url = job.image_url
            if job.image_path:
                image_url = await self._upload_image(job.image_path)
            if image_url:
                body["image"] = {"url": image_url}
                logger.debug("Image-to-video mode with image URL %s", image_url)

            return await self._run(
                "/videos/generations", body, path, poll_interval, max_poll_attempts
            )
        except httpx.HTTPError as e:
            raise JobExecutionError(f"Failed to generate video: {e}") from e

    async def edit(
        self,
        job: JobSpec,
        output_path: str,
        poll_interval: float = DEFAULT_POLL_SECONDS,
        max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
    ) -> ExecutionResult:
        """Apply an edit prompt to an existing video."""
        if not job.video_url:
            raise JobExecutionError("video_url is required for video editing")
        model = job.model or DEFAULT_MODEL
        if model not in MODELS:
            raise JobExecutionError(f"Invalid model: {model}. Must be one of: {', '.join(MODELS)}")

        path = prepare_output_path(output_path)
        body = {
            "model": model,
            "prompt": job.prompt,
            "video": {"url": job.video_url},
        }

        try:
            return await self._run("/videos/edits", body, path, poll_interval, max_poll_attempts)
        except httpx.HTTPError as e:
            raise JobExecutionError(f"Failed to edit video: {e}") from e

    async def _upload_image(self, image_path: str) -> str:
        if self.uploader is None:
            raise JobExecutionError(
                "image_path requires R2 storage to be configured (set the R2_* environment variables)"
            )
        if not Path(image_path).is_file():
            raise JobExecutionError(f"Image file not found: {image_path}")
        try:
            result = await self.uploader.upload(image_path)
        except JobExecutionError:
            raise
        except Exception as e:
            raise JobExecutionError(f"Failed to upload image: {e}") from e
        return result.url

    async def _run(
        self,
        endpoint: str,
        body: Dict[str, Any],
        path: Path,
        poll_interval: float,
        max_poll_attempts: int,
    ) -> ExecutionResult:
        logger.debug("POST %s %s", endpoint, body)
        response = await self.http.post(
            f"{self.base_url}{endpoint}", json=body, headers=self._headers()
        )
        _raise_for_api_error(response)

        request_id = _json_object(response).get("request_id")
        if not request_id:
            raise JobExecutionError("No request_id returned from API")
        logger.debug("Request accepted: %s", request_id)

        result = await self.poll(request_id, poll_interval, max_poll_attempts)
        video = _video_of(result)
        if not video.get("url"):
            raise JobExecutionError("No video URL in completed response")

        await self.download(video["url"], path)
        return ExecutionResult(
            output_path=str(path),
            video_url=video["url"],
            video_duration=video.get("duration"),
            request_id=request_id,
        )

    async def poll(
        self,
        request_id: str,
        poll_interval: float = DEFAULT_POLL_SECONDS,
        max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
    ) -> Dict[str, Any]:
        """Poll a request until the video is ready or has failed."""
        for attempt in range(1, max_poll_attempts + 1):
            logger.debug("Poll attempt %d/%d for %s", attempt, max_poll_attempts, request_id)
            response = await self.http.get(
                f"{self.base_url}/videos/{request_id}", headers=self._headers()
            )

            if not response.is_success:
                # server errors are usually transient
                if response.status_code >= 500 and attempt < max_poll_attempts:
                    logger.debug("Poll got HTTP %d, will retry", response.status_code)
                    await asyncio.sleep(poll_interval)
                    continue
                raise JobExecutionError(
                    f"Failed to get video status: {response.status_code} {response.reason_phrase}",
                    status_code=response.status_code,
                )

            result = _json_object(response)
            status = result.get("status")
            if status == "failed":
                raise JobExecutionError(
                    f"Video generation failed: {result.get('error') or 'Unknown error'}"
                )
            if status == "completed" or _video_of(result).get("url"):
                return result

            if attempt < max_poll_attempts:
                await asyncio.sleep(poll_interval)

        raise JobExecutionError(f"Video generation timed out after {max_poll_attempts} attempts")

    async def download(self, url: str, path: Path) -> None:
        """Stream a finished video to disk.

        Bytes go to a ``.part`` file next to ``path`` that is moved into place
        only once the transfer completes, so a failed download leaves nothing
        behind and a retry can reuse the same name.
        """
        logger.debug("Downloading video from %s", url)
        temp_file = path.with_name(path.name + ".part")
        try:
            async with self.http.stream("GET", url) as response:
                if not response.is_success:
                    raise JobExecutionError(
                        f"Failed to download video: {response.status_code} {response.reason_phrase}",
                        status_code=response.status_code,
                    )
                with open(temp_file, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
            temp_file.replace(path)
        finally:
            if temp_file.exists():
                temp_file.unlink()
        logger.debug("Saved video to %s", path)
