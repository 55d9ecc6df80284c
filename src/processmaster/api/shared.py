"""Public share-link redemption."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Request

from processmaster.api.schemas import RedeemShareRequest, ok

if TYPE_CHECKING:
    from processmaster.containers import AppContainer

router = APIRouter(prefix="/shared", tags=["shared"])


@router.post("/{token}")
async def redeem_shared_link(
    token: str, request: Request, body: RedeemShareRequest | None = None
) -> dict[str, object]:
    """Open a shared guide; no account is required."""
    container: AppContainer = request.app.state.container
    detail = container.guide_service.redeem_shared_link(
        token, password=body.password if body else None
    )
    return ok({"guide": detail.guide, "steps": detail.steps})
