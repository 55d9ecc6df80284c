"""Row conversion helpers shared by the Supabase repositories."""

from datetime import UTC, datetime
from uuid import UUID


def parse_timestamp(value: object) -> datetime | None:
    """Parse a PostgREST timestamp into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_uuid(value: object) -> UUID | None:
    if value is None or value == "":
        return None
    return value if isinstance(value, UUID) else UUID(str(value))


def now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()
