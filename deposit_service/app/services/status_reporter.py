"""커밋먼트 상태 조회 서비스."""

from __future__ import annotations

import math

from fastapi import Depends

from ..auth_service.client import get_authorization_service
from ..auth_service.interfaces import AuthorizationServiceInterface
from ..clock import Clock, get_clock, millis_to_iso8601, system_clock
from ..config import SweepConfig, get_sweep_config
from ..exceptions import ValidationError
from ..models.commitment import AuthState, Commitment, StatusReport, is_expired, normalize_email
from ..repositories.commitment_repository import CommitmentRepository
from ..repositories.interfaces import CommitmentRepositoryInterface


HOUR_MS = 60 * 60 * 1000


def hours_left(now: int, deadline: int) -> int:
    # 0.5 는 올림 (JS Math.round 와 같은 규칙)
    return math.floor((deadline - now) / HOUR_MS + 0.5)


def describe(commitment: Commitment | None, now: int) -> StatusReport:
    """커밋먼트를 사용자용 상태/메시지로 변환한다. (부작용 없음)"""
    if commitment is None:
        return StatusReport(
            status="no_payments",
            message="No payments found for this email address.",
            show_message=False,
        )

    state = commitment.auth_state
    if state is AuthState.VOIDED:
        status = "completed"
        message = "🎉 Congratulations! You completed your goal and your $5 has been refunded!"
        show_message = True
    elif state is AuthState.CAPTURED:
        status = "failed"
        message = (
            "😔 You missed your 24-hour deadline. Your $5 has been forfeited, "
            "but don't give up - try again!"
        )
        show_message = True
    elif state is AuthState.PENDING_CAPTURE and not is_expired(now, commitment.deadline):
        status = "active"
        message = (
            f"⏰ Your goal is active! You have {hours_left(now, commitment.deadline)} "
            "hours left to complete it."
        )
        show_message = True
    elif state is AuthState.PENDING_CAPTURE:
        # 마감은 지났지만 아직 스윕이 capture 하지 않은 상태
        status = "expired"
        message = "⏰ Your deadline has passed. Your payment will be processed shortly."
        show_message = True
    else:
        status = "unknown"
        message = "Unknown status."
        show_message = False

    return StatusReport(
        status=status,
        message=message,
        show_message=show_message,
        goal=commitment.goal,
        deadline=millis_to_iso8601(commitment.deadline),
        email=commitment.email,
    )


class StatusReporter:
    def __init__(
        self,
        repository: CommitmentRepositoryInterface,
        clock: Clock = system_clock,
    ) -> None:
        self._repo = repository
        self._clock = clock

    def check_status(self, email: str) -> StatusReport:
        """email 의 가장 최근 커밋먼트 상태를 조회한다."""
        normalized = normalize_email(email)
        if not normalized:
            raise ValidationError("Email parameter required")

        commitments = self._repo.find_by_email(normalized)
        latest = commitments[0] if commitments else None
        return describe(latest, self._clock())


def get_status_reporter(
    auth_service: AuthorizationServiceInterface = Depends(get_authorization_service),
    clock: Clock = Depends(get_clock),
    sweep_config: SweepConfig = Depends(get_sweep_config),
) -> StatusReporter:
    """FastAPI DI용 StatusReporter 팩토리"""
    repository = CommitmentRepository(auth_service, sweep_config.list_page_size)
    return StatusReporter(repository, clock)
