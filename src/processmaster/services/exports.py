"""Render guides to HTML or Markdown and publish them to the object store."""

import html
from dataclasses import dataclass
from uuid import UUID

from processmaster.domain.auth import AuthenticatedUser
from processmaster.domain.guides import GuideDetail
from processmaster.errors import ValidationError
from processmaster.services.guides import GuideService
from processmaster.services.storage import ObjectStore, generate_object_key

EXPORT_FORMATS: dict[str, tuple[str, str]] = {
    "html": ("html", "text/html; charset=utf-8"),
    "markdown": ("md", "text/markdown; charset=utf-8"),
}


@dataclass(frozen=True)
class ExportResult:
    key: str
    download_url: str
    format: str
    content_type: str
    size_bytes: int
    expires_in: int


@dataclass
class ExportService:
    guides: GuideService
    object_store: ObjectStore
    download_ttl: int = 3600

    async def export(
        self, guide_id: UUID, viewer: AuthenticatedUser, fmt: str
    ) -> ExportResult:
        """Render a readable guide and return a signed download URL."""
        if fmt not in EXPORT_FORMATS:
            options = ", ".join(sorted(EXPORT_FORMATS))
            raise ValidationError(
                f"Unsupported export format {fmt!r}, use one of: {options}"
            )

        detail = self.guides.readable_detail(guide_id, viewer)
        extension, content_type = EXPORT_FORMATS[fmt]
        body = render_html(detail) if fmt == "html" else render_markdown(detail)
        data = body.encode("utf-8")
        key = generate_object_key("exports", viewer.id, f"guide-{guide_id}.{extension}")
        stored = await self.object_store.put_object(
            key, data, content_type, metadata={"guide-id": str(guide_id)}
        )
        return ExportResult(
            key=stored.key,
            download_url=self.object_store.presigned_download_url(
                stored.key, self.download_ttl
            ),
            format=fmt,
            content_type=content_type,
            size_bytes=stored.size_bytes,
            expires_in=self.download_ttl,
        )


def render_markdown(detail: GuideDetail) -> str:
    guide = detail.guide
    lines = [f"# {guide.title}", ""]
    if guide.description:
        lines += [guide.description, ""]
    meta = [
        f"**{label}:** {value}"
        for label, value in (
            ("Difficulty", guide.difficulty),
            ("Estimated time", guide.estimated_time),
        )
        if value
    ]
    if meta:
        lines += [" | ".join(meta), ""]
    for step in detail.steps:
        lines += [f"## {step.step_number}. {step.title}", "", step.description, ""]
        lines += [f"> Tip: {tip}" for tip in step.tips]
        lines += [f"> Warning: {warning}" for warning in step.warnings]
        if step.tips or step.warnings:
            lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def render_html(detail: GuideDetail) -> str:
    guide = detail.guide
    esc = html.escape
    steps = []
    for step in detail.steps:
        notes = "".join(
            f'<p class="tip">{esc(tip)}</p>' for tip in step.tips
        ) + "".join(f'<p class="warning">{esc(w)}</p>' for w in step.warnings)
        steps.append(
            f'<section class="step"><h2>{step.step_number}. {esc(step.title)}</h2>'
            f"<p>{esc(step.description)}</p>{notes}</section>"
        )
    meta = " &middot; ".join(
        esc(value) for value in (guide.difficulty, guide.estimated_time) if value
    )
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en"><head><meta charset="utf-8">'
        f"<title>{esc(guide.title)}</title>"
        "<style>body{font-family:system-ui,sans-serif;max-width:48rem;margin:2rem auto}"
        ".step{border-left:3px solid #2563eb;padding-left:1rem;margin:1.5rem 0}"
        ".tip{color:#047857}.warning{color:#b91c1c}</style></head><body>"
        f"<h1>{esc(guide.title)}</h1>"
        f"<p>{esc(guide.description or '')}</p>"
        f'<p class="meta">{meta}</p>'
        f"{''.join(steps)}</body></html>\n"
    )
