"""Data models for batch jobs, outcomes and configuration."""

from enum import Enum
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator, model_validator


MODELS = ("grok-imagine-video",)
ASPECT_RATIOS = ("16:9", "4:3", "1:1", "9:16", "3:4", "3:2", "2:3")
RESOLUTIONS = ("720p", "480p")

Model = Literal["grok-imagine-video"]
AspectRatio = Literal["16:9", "4:3", "1:1", "9:16", "3:4", "3:2", "2:3"]
Resolution = Literal["720p", "480p"]

MIN_DURATION = 1
MAX_DURATION = 15
MAX_EDIT_VIDEO_DURATION = 8.7  # seconds

DEFAULT_MODEL = "grok-imagine-video"
DEFAULT_DURATION = 5
DEFAULT_RESOLUTION = "720p"
DEFAULT_ASPECT_RATIO = "16:9"

DEFAULT_POLL_INTERVAL = 5000  # ms
DEFAULT_MAX_POLL_ATTEMPTS = 120  # 10 minutes at the default interval
DEFAULT_MAX_CONCURRENT = 2
DEFAULT_TIMEOUT = 600000  # ms
DEFAULT_RETRY_PATTERNS = ["rate_limit", "timeout", "429", "503"]


class JobKind(str, Enum):
    """What a job asks the API to do."""
    GENERATION = "generation"
    IMAGE_TO_VIDEO = "image_to_video"
    EDIT = "edit"


class JobStatus(str, Enum):
    """Terminal job states."""
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JobSpec(BaseModel):
    """A single job from the batch file."""
    prompt: str
    output_path: Optional[str] = None
    model: Optional[Model] = None
    duration: Optional[int] = Field(default=None, ge=MIN_DURATION, le=MAX_DURATION)
    aspect_ratio: Optional[AspectRatio] = None
    resolution: Optional[Resolution] = None
    image_url: Optional[str] = None
    image_path: Optional[str] = None
    video_url: Optional[str] = None

    class Config:
        frozen = True

    @field_validator("prompt")
    @classmethod
    def prompt_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("prompt is required and must be a non-empty string")
        return value

    @model_validator(mode="after")
    def check_job_type(self) -> "JobSpec":
        if self.image_url and self.image_path:
            raise ValueError("Cannot specify both image_url and image_path")
        if self.video_url:
            if self.image_url or self.image_path:
                raise ValueError("Cannot specify both video_url and an image reference")
            if self.duration is not None:
                raise ValueError("duration cannot be specified for edit jobs (inherited from source video)")
            if self.aspect_ratio is not None:
                raise ValueError("aspect_ratio cannot be specified for edit jobs")
        return self


def classify(job: JobSpec) -> JobKind:
    """Classify a job. A source video wins over an image reference."""
    if job.video_url:
        return JobKind.EDIT
    if job.image_url or job.image_path:
        return JobKind.IMAGE_TO_VIDEO
    return JobKind.GENERATION


class RetryPolicy(BaseModel):
    """Retry policy for failed jobs."""
    max_retries: int = Field(default=2, ge=0, le=5)
    retry_delay_ms: int = Field(default=1000, ge=100, le=60000)
    # case-insensitive substrings of the error message
    retry_on_errors: List[str] = Field(default_factory=lambda: list(DEFAULT_RETRY_PATTERNS))

    class Config:
        frozen = True


class BatchConfig(BaseModel):
    """Batch configuration file structure."""
    jobs: List[JobSpec] = Field(min_length=1, max_length=100)
    output_dir: Optional[str] = None
    max_concurrent: int = Field(default=DEFAULT_MAX_CONCURRENT, ge=1, le=10)
    timeout: int = Field(default=DEFAULT_TIMEOUT, ge=1000, le=3600000)
    poll_interval: int = Field(default=DEFAULT_POLL_INTERVAL, ge=1000, le=60000)
    max_poll_attempts: int = Field(default=DEFAULT_MAX_POLL_ATTEMPTS, ge=1, le=1000)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    default_model: Model = DEFAULT_MODEL
    default_resolution: Resolution = DEFAULT_RESOLUTION
    default_aspect_ratio: AspectRatio = DEFAULT_ASPECT_RATIO
    default_duration: int = Field(default=DEFAULT_DURATION, ge=MIN_DURATION, le=MAX_DURATION)

    class Config:
        frozen = True

    def job_with_defaults(self, job: JobSpec) -> JobSpec:
        """Return the job with batch-level defaults filled in."""
        update = {
            "model": job.model or self.default_model,
            "resolution": job.resolution or self.default_resolution,
        }
        if classify(job) != JobKind.EDIT:
            update["duration"] = job.duration or self.default_duration
            update["aspect_ratio"] = job.aspect_ratio or self.default_aspect_ratio
        return job.model_copy(update=update)


class ExecutionResult(BaseModel):
    """What the executor hands back for a finished job."""
    output_path: str
    video_url: Optional[str] = None
    video_duration: Optional[float] = None
    request_id: Optional[str] = None


class JobOutcome(BaseModel):
    """Result of a single batch job."""
    index: int  # 1-based
    prompt: str
    kind: JobKind
    status: JobStatus
    output_path: Optional[str] = None
    video_url: Optional[str] = None
    video_duration: Optional[float] = None
    request_id: Optional[str] = None
    error: Optional[str] = None
    duration_ms: Optional[int] = None
    attempts: int = 0

    class Config:
        frozen = True


class BatchReport(BaseModel):
    """Overall batch execution result."""
    total: int
    succeeded: int
    failed: int
    cancelled: int
    results: List[JobOutcome]
    started_at: str
    finished_at: str
    total_duration_ms: int
    estimated_cost: Optional[float] = None

    class Config:
        frozen = True

    @property
    def exit_code(self) -> int:
        return 0 if self.failed == 0 and self.cancelled == 0 else 1


class CostBreakdown(BaseModel):
    type: JobKind
    count: int
    total_duration: float
    cost_min: float
    cost_max: float


class CostEstimate(BaseModel):
    """Cost estimation result."""
    total_jobs: int
    total_video_duration: float
    estimated_cost_min: float
    estimated_cost_max: float
    breakdown: List[CostBreakdown]
