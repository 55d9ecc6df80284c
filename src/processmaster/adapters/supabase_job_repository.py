"""Supabase-backed processing job repository."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from processmaster.adapters.supabase_rows import now_iso, parse_timestamp, parse_uuid
from processmaster.domain.jobs import JobStatus, ProcessingJob
from processmaster.services.jobs import JobRepository

_COLUMNS = (
    "id, user_id, capture_session_id, guide_id, job_type, status, input_data, "
    "output_data, error_message, processing_time, created_at, started_at, completed_at"
)


@dataclass
class SupabaseJobRepository(JobRepository):
    """Conditional updates keep status transitions single-winner."""

    client: Client

    def create_job(  # noqa: PLR0913
        self,
        user_id: UUID,
        job_type: str,
        input_data: dict[str, object],
        session_id: UUID | None = None,
        guide_id: UUID | None = None,
        status: str = JobStatus.PENDING,
        output_data: dict[str, object] | None = None,
        processing_time: int | None = None,
    ) -> ProcessingJob:
        payload: dict[str, object] = {
            "user_id": str(user_id),
            "job_type": str(job_type),
            "status": str(status),
            "input_data": input_data,
            "capture_session_id": str(session_id) if session_id else None,
            "guide_id": str(guide_id) if guide_id else None,
            "output_data": output_data,
            "processing_time": processing_time,
        }
        if status == JobStatus.COMPLETED:
            payload["started_at"] = now_iso()
            payload["completed_at"] = now_iso()
        response = self.client.table("ai_processing_jobs").insert(payload).execute()
        if not response.data:
            raise RuntimeError("Failed to create processing job")
        return _to_job(response.data[0])

    def get_job(self, job_id: UUID) -> ProcessingJob | None:
        response = (
            self.client.table("ai_processing_jobs")
            .select(_COLUMNS)
            .eq("id", str(job_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _to_job(response.data[0])

    def claim_job(self, job_id: UUID) -> ProcessingJob | None:
        response = (
            self.client.table("ai_processing_jobs")
            .update({"status": JobStatus.RUNNING.value, "started_at": now_iso()})
            .eq("id", str(job_id))
            .eq("status", JobStatus.PENDING.value)
            .execute()
        )
        return _first(response.data)

    def complete_job(
        self, job_id: UUID, output_data: dict[str, object], processing_time: int
    ) -> ProcessingJob | None:
        response = (
            self.client.table("ai_processing_jobs")
            .update(
                {
                    "status": JobStatus.COMPLETED.value,
                    "output_data": output_data,
                    "processing_time": processing_time,
                    "completed_at": now_iso(),
                }
            )
            .eq("id", str(job_id))
            .eq("status", JobStatus.RUNNING.value)
            .execute()
        )
        return _first(response.data)

    def fail_job(
        self, job_id: UUID, error_message: str, processing_time: int | None = None
    ) -> ProcessingJob | None:
        payload: dict[str, object] = {
            "status": JobStatus.FAILED.value,
            "error_message": error_message,
            "completed_at": now_iso(),
        }
        if processing_time is not None:
            payload["processing_time"] = processing_time
        response = (
            self.client.table("ai_processing_jobs")
            .update(payload)
            .eq("id", str(job_id))
            .in_("status", [JobStatus.PENDING.value, JobStatus.RUNNING.value])
            .execute()
        )
        return _first(response.data)

    def latest_job_for_session(self, session_id: UUID) -> ProcessingJob | None:
        response = (
            self.client.table("ai_processing_jobs")
            .select(_COLUMNS)
            .eq("capture_session_id", str(session_id))
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return _first(response.data)

    def list_pending_jobs(self, limit: int) -> list[ProcessingJob]:
        response = (
            self.client.table("ai_processing_jobs")
            .select(_COLUMNS)
            .eq("status", JobStatus.PENDING.value)
            .order("created_at")
            .limit(limit)
            .execute()
        )
        return [_to_job(row) for row in response.data or []]

    def requeue_stale_jobs(self, started_before: datetime) -> list[ProcessingJob]:
        response = (
            self.client.table("ai_processing_jobs")
            .update({"status": JobStatus.PENDING.value, "started_at": None})
            .eq("status", JobStatus.RUNNING.value)
            .lt("started_at", started_before.isoformat())
            .execute()
        )
        return [_to_job(row) for row in response.data or []]


def _first(rows: list[dict[str, object]] | None) -> ProcessingJob | None:
    if not rows:
        return None
    return _to_job(rows[0])


def _to_job(row: dict[str, object]) -> ProcessingJob:
    processing_time = row.get("processing_time")
    return ProcessingJob(
        id=UUID(str(row["id"])),
        user_id=UUID(str(row["user_id"])),
        job_type=str(row["job_type"]),
        status=str(row["status"]),
        input_data=dict(row.get("input_data") or {}),
        session_id=parse_uuid(row.get("capture_session_id")),
        guide_id=parse_uuid(row.get("guide_id")),
        output_data=row.get("output_data"),
        error_message=row.get("error_message"),
        processing_time=int(processing_time) if processing_time is not None else None,
        created_at=parse_timestamp(row.get("created_at")),
        started_at=parse_timestamp(row.get("started_at")),
        completed_at=parse_timestamp(row.get("completed_at")),
    )
