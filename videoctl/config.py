"""Batch configuration loading, validation and output path resolution."""

import json
from pathlib import Path
from typing import Any, Dict, Literal, Optional
from pydantic import BaseModel, ValidationError

from .exceptions import BatchConfigError
from .models import BatchConfig, JobKind, JobSpec, classify
from .settings import Settings

OUTPUT_PREFIXES = {
    JobKind.GENERATION: "generated",
    JobKind.IMAGE_TO_VIDEO: "animated",
    JobKind.EDIT: "edited",
}


class ExecutionOptions(BaseModel):
    """Batch execution options given on the command line."""
    output_dir: Optional[str] = None
    format: Literal["text", "json"] = "text"
    timeout: Optional[int] = None
    max_concurrent: Optional[int] = None
    poll_interval: Optional[int] = None
    max_poll_attempts: Optional[int] = None
    estimate_only: bool = False
    allow_any_path: bool = False
    report_file: Optional[str] = None


def _describe_errors(error: ValidationError) -> str:
    messages = []
    for item in error.errors():
        loc = list(item["loc"])
        msg = item["msg"]
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]

        prefix = ""
        if len(loc) >= 2 and loc[0] == "jobs" and isinstance(loc[1], int):
            prefix = f"Job {loc[1] + 1}: "
            loc = loc[2:]
        field = ".".join(str(part) for part in loc)
        messages.append(f"{prefix}{field}: {msg}" if field else f"{prefix}{msg}")
    return "; ".join(messages)


def parse_batch_config(data: Any) -> BatchConfig:
    """Validate an already-decoded batch configuration."""
    if not isinstance(data, dict):
        raise BatchConfigError("Configuration must be a JSON object")
    if not isinstance(data.get("jobs"), list):
        raise BatchConfigError('Configuration must have a "jobs" array')
    try:
        return BatchConfig.model_validate(data)
    except ValidationError as e:
        raise BatchConfigError(_describe_errors(e)) from e


def load_batch_config(config_path: str) -> BatchConfig:
    """Load, parse and validate a batch configuration file."""
    path = Path(config_path)
    if not path.is_absolute():
        path = Path.cwd() / path

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise BatchConfigError(f"Configuration file not found: {config_path}")
    except json.JSONDecodeError as e:
        raise BatchConfigError(f"Invalid JSON in configuration file: {e}")
    except OSError as e:
        raise BatchConfigError(f"Failed to load configuration: {e}")

    return parse_batch_config(data)


def merge_batch_config(
    config: BatchConfig,
    options: ExecutionOptions,
    settings: Optional[Settings] = None,
) -> BatchConfig:
    """Apply environment defaults and command line overrides to a config.

    Precedence: command line option, then the config file, then the
    environment, then built-in defaults.
    """
    settings = settings or Settings()
    data: Dict[str, Any] = config.model_dump(exclude_unset=True)
    explicit = config.model_fields_set

    if "output_dir" not in explicit and settings.output_dir:
        data["output_dir"] = settings.output_dir
    if "poll_interval" not in explicit:
        data["poll_interval"] = settings.video_poll_interval
    if "max_poll_attempts" not in explicit:
        data["max_poll_attempts"] = settings.video_max_poll_attempts

    overrides = {
        "output_dir": options.output_dir,
        "max_concurrent": options.max_concurrent,
        "timeout": options.timeout,
        "poll_interval": options.poll_interval,
        "max_poll_attempts": options.max_poll_attempts,
    }
    data.update({key: value for key, value in overrides.items() if value is not None})

    return parse_batch_config(data)


def resolve_output_path(
    job: JobSpec,
    index: int,
    output_dir: str,
    allow_any_path: bool = False,
) -> str:
    """Work out where a job's video is written. ``index`` is 0-based."""
    if job.output_path:
        path = Path(job.output_path)
        if not path.is_absolute():
            return str(Path(output_dir) / path)

        if not allow_any_path:
            resolved = path.resolve()
            allowed = Path(output_dir).resolve()
            if resolved != allowed and allowed not in resolved.parents:
                raise BatchConfigError(
                    f"Job {index + 1}: Output path must be within output directory. "
                    "Use --allow-any-path to override."
                )
        return str(path)

    prefix = OUTPUT_PREFIXES[classify(job)]
    return str(Path(output_dir) / f"{prefix}_{index + 1}.mp4")
