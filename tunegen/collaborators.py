"""Interfaces to the backend that owns quotas and saved tracks."""

import logging
from typing import Protocol

from tunegen.models import GenerationJob

logger = logging.getLogger(__name__)


class QuotaProvider(Protocol):
    async def remaining_generations(self) -> int: ...


class TrackSink(Protocol):
    async def save_tracks(self, job: GenerationJob) -> None: ...


class UnlimitedQuota:
    """Quota provider used when no backend is wired in."""

    async def remaining_generations(self) -> int:
        return 1_000_000


class LoggingTrackSink:
    async def save_tracks(self, job: GenerationJob) -> None:
        logger.info(
            "Task %s produced %d tracks: %s",
            job.task_id,
            len(job.tracks),
            ", ".join(track.id for track in job.tracks),
        )
