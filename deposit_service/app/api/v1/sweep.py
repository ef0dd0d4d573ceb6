"""스케줄러(크론)가 호출하는 만료 hold 스윕 라우터."""

from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, status

from ..schemas.commitments import SweepResponse
from ...config import SweepConfig, get_sweep_config
from ...exceptions import EnumerationError
from ...services.resolution_engine import ResolutionEngine, get_resolution_engine


logger = logging.getLogger(__name__)


def verify_cron_secret(
    sweep_config: Annotated[SweepConfig, Depends(get_sweep_config)],
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Authorization: Bearer <CRON_SECRET> 헤더를 검증한다.

    CRON_SECRET 이 설정되지 않았으면 모든 호출을 거부한다.
    """
    secret = sweep_config.cron_secret
    expected = f"Bearer {secret}" if secret else None
    if expected is None or not secrets.compare_digest(
        (authorization or "").encode(), expected.encode()
    ):
        logger.warning("unauthorized sweep request rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Unauthorized"},
        )


router = APIRouter(
    prefix="/internal/sweep",
    tags=["sweep"],
    dependencies=[Depends(verify_cron_secret)],
)


@router.api_route(
    "",
    methods=["GET", "POST"],
    response_model=SweepResponse,
    summary="마감이 지난 hold 를 capture",
)
def run_sweep(
    engine: Annotated[ResolutionEngine, Depends(get_resolution_engine)],
) -> SweepResponse:
    try:
        summary = engine.sweep()
    except EnumerationError as exc:
        logger.exception("sweep failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Cron job failed", "details": str(exc)},
        ) from exc

    return SweepResponse(
        total_payments=summary.total_examined,
        requires_capture=summary.requires_capture,
        expired_found=summary.expired_found,
        successfully_captured=summary.successfully_captured,
        already_resolved=summary.already_resolved,
        failed=summary.failed,
        timestamp=summary.timestamp,
    )
