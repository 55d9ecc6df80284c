"""Domain models for AI processing jobs."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from uuid import UUID


class JobStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(StrEnum):
    ANALYZE = "analyze"
    GENERATE = "generate"
    BATCH_ANALYZE = "batch_analyze"
    ENHANCE = "enhance"
    TRANSLATE = "translate"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


@dataclass(frozen=True)
class ProcessingJob:
    """Represents one asynchronous model invocation and its outcome."""

    id: UUID
    user_id: UUID
    job_type: str
    status: str
    input_data: dict[str, object]
    session_id: UUID | None = None
    guide_id: UUID | None = None
    output_data: dict[str, object] | None = None
    error_message: str | None = None
    processing_time: int | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
