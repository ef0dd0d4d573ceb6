"""커밋먼트 생성/완료/조회 API 라우터."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse

from ..forms import read_form_body
from ..schemas.commitments import ResolveResponse, StatusResponse
from ...config import SiteConfig, get_site_config
from ...exceptions import AuthServiceError, HoldNotFoundError, ValidationError
from ...models.commitment import AuthState, normalize_email
from ...models.resolution import ResolutionOutcome
from ...services.commitment_factory import (
    CommitmentFactory,
    EMAIL_FIELD_ALIASES,
    GOAL_FIELD_ALIASES,
    extract_commitment_fields,
    first_field,
    get_commitment_factory,
)
from ...services.resolution_engine import ResolutionEngine, get_resolution_engine
from ...services.status_reporter import StatusReporter, get_status_reporter


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/commitments", tags=["commitments"])


HOLD_ID_FIELD_ALIASES = ("hold_id", "holdId", "pi")
ACCOMPLISHMENT_FIELD_ALIASES = (
    "accomplishment",
    "what_finished",
    "finished",
    "text",
    "message",
)


def _landing_fragment(outcome: ResolutionOutcome | None) -> str:
    if outcome is None:
        return "no-goal-found"
    if outcome.auth_state is AuthState.VOIDED:
        return "completed"
    if outcome.auth_state is AuthState.CAPTURED:
        return "deadline-missed"
    return "no-goal-found"


def _auth_service_failure(message: str, exc: AuthServiceError) -> HTTPException:
    if isinstance(exc, HoldNotFoundError):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Hold not found", "details": str(exc)},
        )
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"error": message, "details": str(exc)},
    )


@router.post("", summary="커밋먼트 생성 후 결제 페이지로 리다이렉트")
async def create_commitment(
    request: Request,
    factory: Annotated[CommitmentFactory, Depends(get_commitment_factory)],
) -> RedirectResponse:
    form = await read_form_body(request)
    try:
        email, goal = extract_commitment_fields(form)
        redirect = factory.create_commitment(email, goal)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": str(exc),
                "received": {
                    "email": bool(first_field(form, EMAIL_FIELD_ALIASES)),
                    "goal": bool(first_field(form, GOAL_FIELD_ALIASES)),
                },
            },
        ) from exc
    except AuthServiceError as exc:
        logger.exception("failed to create checkout session")
        raise _auth_service_failure("Failed to create checkout session", exc) from exc

    return RedirectResponse(redirect.url, status_code=status.HTTP_303_SEE_OTHER)


@router.get(
    "/status",
    response_model=StatusResponse,
    summary="email 기준 최신 커밋먼트 상태 조회",
)
def check_status(
    reporter: Annotated[StatusReporter, Depends(get_status_reporter)],
    email: str = Query("", description="커밋먼트를 만든 email"),
) -> StatusResponse:
    try:
        report = reporter.check_status(email)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": str(exc)},
        ) from exc
    except AuthServiceError as exc:
        logger.exception("failed to check status")
        raise _auth_service_failure("Failed to check status", exc) from exc

    return StatusResponse(**report.model_dump())


@router.get(
    "/{hold_id}/resolve",
    response_model=ResolveResponse,
    summary="hold 하나를 즉시 해소 (void/capture/no-action)",
)
def resolve_commitment(
    hold_id: str,
    engine: Annotated[ResolutionEngine, Depends(get_resolution_engine)],
    complete: bool = Query(False, description="사용자가 완료 버튼을 눌렀는지"),
) -> ResolveResponse:
    try:
        outcome = engine.resolve_on_user_action(hold_id, complete)
    except AuthServiceError as exc:
        logger.exception("failed to resolve hold", extra={"hold_id": hold_id})
        raise _auth_service_failure("Failed to resolve commitment", exc) from exc

    return ResolveResponse(
        status=outcome.status_label,
        hold_id=outcome.hold_id,
        auth_state=outcome.auth_state.value,
    )


@router.post("/complete", summary="목표 완료 처리 후 랜딩 페이지로 리다이렉트")
async def complete_goal(
    request: Request,
    engine: Annotated[ResolutionEngine, Depends(get_resolution_engine)],
    site: Annotated[SiteConfig, Depends(get_site_config)],
) -> RedirectResponse:
    form = await read_form_body(request)
    hold_id = first_field(form, HOLD_ID_FIELD_ALIASES)
    email = normalize_email(first_field(form, EMAIL_FIELD_ALIASES))
    accomplishment = first_field(form, ACCOMPLISHMENT_FIELD_ALIASES)

    if not hold_id and not email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "Email is required",
                "received": {"email": False, "accomplishment": bool(accomplishment)},
            },
        )

    try:
        if hold_id:
            outcome: ResolutionOutcome | None = engine.resolve_on_user_action(
                hold_id, user_signaled_complete=True
            )
        else:
            outcome = engine.complete_latest_for_email(email, accomplishment)
    except HoldNotFoundError:
        outcome = None
    except AuthServiceError as exc:
        logger.exception("failed to process goal completion")
        raise _auth_service_failure("Failed to process goal completion", exc) from exc

    return RedirectResponse(
        site.landing(_landing_fragment(outcome)),
        status_code=status.HTTP_303_SEE_OTHER,
    )
