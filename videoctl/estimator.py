"""Cost estimation for a batch, using the same job classification as the scheduler."""

from typing import Dict
from .models import BatchConfig, CostBreakdown, CostEstimate, JobKind, classify

# USD per second of output video. Placeholder figures, not published pricing.
VIDEO_COSTS = {
    JobKind.GENERATION: {"per_second": 0.05},
    JobKind.IMAGE_TO_VIDEO: {"per_second": 0.05, "image_bonus": 0.01},
    JobKind.EDIT: {"per_second": 0.07},
}

ESTIMATE_MARGIN = 1.2

# Edit output length comes from the source video, which is unknown up front.
EDIT_ASSUMED_DURATION = 5


def estimate(config: BatchConfig) -> CostEstimate:
    """Estimate the cost range of running every job in the batch."""
    buckets: Dict[JobKind, Dict[str, float]] = {
        kind: {"count": 0, "total_duration": 0} for kind in JobKind
    }

    for job in config.jobs:
        kind = classify(job)
        if kind == JobKind.EDIT:
            duration = EDIT_ASSUMED_DURATION
        else:
            duration = job.duration or config.default_duration
        buckets[kind]["count"] += 1
        buckets[kind]["total_duration"] += duration

    breakdown = []
    total_min = 0.0
    total_max = 0.0
    total_video_duration = 0.0

    for kind, data in buckets.items():
        if data["count"] == 0:
            continue

        rates = VIDEO_COSTS[kind]
        cost = rates["per_second"] * data["total_duration"]
        cost += rates.get("image_bonus", 0.0) * data["count"]

        breakdown.append(
            CostBreakdown(
                type=kind,
                count=int(data["count"]),
                total_duration=data["total_duration"],
                cost_min=cost,
                cost_max=cost * ESTIMATE_MARGIN,
            )
        )
        total_min += cost
        total_max += cost * ESTIMATE_MARGIN
        total_video_duration += data["total_duration"]

    return CostEstimate(
        total_jobs=len(config.jobs),
        total_video_duration=total_video_duration,
        estimated_cost_min=total_min,
        estimated_cost_max=total_max,
        breakdown=breakdown,
    )
