"""커밋먼트 해소(void/capture) 상태 머신.

상태: PENDING_CAPTURE -> VOIDED (목표 달성) | CAPTURED (마감 초과, 보증금 몰수).
두 종결 상태에서 다시 PENDING_CAPTURE 로 돌아가지 않는다.

사용자 요청("완료" 클릭)과 주기적 스윕이 같은 hold 를 동시에 건드릴 수 있다.
로컬 락은 없고, 결제 대행사의 종결 상태 검사가 유일한 직렬화 지점이다. 먼저 도착한
변경만 성공하고, 뒤따르는 void/capture 는 AlreadyTerminalError 로 실패하며 여기서는
이를 no-op 으로 처리한다.
"""

from __future__ import annotations

import logging

from fastapi import Depends

from ..auth_service.client import get_authorization_service
from ..auth_service.interfaces import AuthorizationServiceInterface
from ..clock import Clock, get_clock, millis_to_iso8601, system_clock
from ..config import SweepConfig, get_sweep_config
from ..exceptions import AlreadyTerminalError, AuthServiceError, EnumerationError
from ..models.commitment import (
    AuthState,
    CAPTURED_REASON_DEADLINE_EXPIRED,
    is_expired,
)
from ..models.resolution import (
    Decision,
    ResolutionAction,
    ResolutionOutcome,
    SweepSummary,
)
from ..repositories.commitment_repository import CommitmentRepository, to_commitment
from ..repositories.interfaces import CommitmentRepositoryInterface


logger = logging.getLogger(__name__)


def decide(
    state: AuthState,
    now: int,
    deadline: int | None,
    user_signaled_complete: bool,
) -> Decision:
    """현재 상태와 마감 시각으로 다음 동작을 결정한다. (부작용 없음)

    - 종결/기타 상태: 아무것도 하지 않는다.
    - 마감 이후(now >= deadline): 완료 신호와 무관하게 capture.
    - 마감 이전 + 완료 신호: void.
    - 그 외: 대기.
    """

    if state is not AuthState.PENDING_CAPTURE or deadline is None:
        return Decision(ResolutionAction.NONE, state)

    if is_expired(now, deadline):
        return Decision(ResolutionAction.CAPTURE, AuthState.CAPTURED)

    if user_signaled_complete:
        return Decision(ResolutionAction.VOID, AuthState.VOIDED)

    return Decision(ResolutionAction.NONE, AuthState.PENDING_CAPTURE)


def capture_metadata(now: int) -> dict[str, str]:
    return {
        "captured_at": millis_to_iso8601(now),
        "captured_reason": CAPTURED_REASON_DEADLINE_EXPIRED,
    }


class ResolutionEngine:
    def __init__(
        self,
        auth_service: AuthorizationServiceInterface,
        repository: CommitmentRepositoryInterface,
        clock: Clock = system_clock,
        sweep_page_size: int = 100,
    ) -> None:
        self._auth = auth_service
        self._repo = repository
        self._clock = clock
        self._sweep_page_size = sweep_page_size

    def resolve_on_user_action(
        self, hold_id: str, user_signaled_complete: bool
    ) -> ResolutionOutcome:
        """사용자 요청으로 hold 하나를 해소한다.

        hold 는 캐시 없이 매번 새로 조회한다. 늦게 도착한 "완료" 신호는 만료된 hold 를
        void 하지 않고 capture 로 이어진다.
        """
        hold = self._auth.retrieve_hold(hold_id)
        commitment = to_commitment(hold)
        if commitment is None:
            logger.warning(
                "hold has no commitment metadata; ignoring",
                extra={"hold_id": hold_id},
            )
            return ResolutionOutcome(
                hold_id=hold.id, action=ResolutionAction.NONE, auth_state=hold.status
            )

        now = self._clock()
        decision = decide(
            commitment.auth_state, now, commitment.deadline, user_signaled_complete
        )
        return self._apply(commitment.id, decision, now)

    def complete_latest_for_email(
        self, email: str, accomplishment: str | None = None
    ) -> ResolutionOutcome | None:
        """email 의 가장 최근 활성 커밋먼트를 완료 처리한다.

        활성 커밋먼트가 없으면 None 을 반환한다.
        """
        active = self._repo.find_active_by_email(email, self._clock())
        logger.info(
            "found %d active commitments", len(active), extra={"email": email}
        )
        if not active:
            return None

        latest = active[0]
        outcome = self.resolve_on_user_action(latest.id, user_signaled_complete=True)
        logger.info(
            "goal completion processed (goal=%r, accomplishment=%r, status=%s)",
            latest.goal,
            accomplishment,
            outcome.status_label,
            extra={"hold_id": latest.id, "email": email},
        )
        return outcome

    def sweep(self) -> SweepSummary:
        """대행사의 모든 hold 를 훑어 마감이 지난 커밋먼트를 capture 한다.

        개별 hold 실패는 로그만 남기고 나머지를 계속 처리한다. hold 목록 자체를
        가져오지 못한 경우에만 EnumerationError 를 발생시킨다.
        """
        logger.info("sweep starting: checking for expired holds")
        summary = SweepSummary()

        try:
            # total_examined 는 상태와 무관하게 조회된 모든 hold 수다.
            holds = list(self._auth.iter_holds(page_size=self._sweep_page_size))
        except AuthServiceError as exc:
            raise EnumerationError(f"failed to list holds: {exc}") from exc

        summary.total_examined = len(holds)

        for hold in holds:
            if hold.status is not AuthState.PENDING_CAPTURE:
                continue
            commitment = to_commitment(hold)
            if commitment is None:
                continue
            summary.requires_capture += 1

            now = self._clock()
            if not is_expired(now, commitment.deadline):
                continue

            summary.expired_found += 1
            logger.info(
                "capturing expired hold",
                extra={"hold_id": commitment.id, "email": commitment.email},
            )
            try:
                self._auth.capture_hold(commitment.id, metadata=capture_metadata(now))
            except AlreadyTerminalError:
                summary.already_resolved += 1
                logger.info(
                    "hold already resolved by another request",
                    extra={"hold_id": commitment.id},
                )
                continue
            except Exception:  # noqa: BLE001
                summary.failed += 1
                logger.exception(
                    "failed to capture hold", extra={"hold_id": commitment.id}
                )
                continue

            summary.successfully_captured += 1

        summary.timestamp = millis_to_iso8601(self._clock())
        logger.info(
            "sweep completed: %d expired, %d captured, %d already resolved, %d failed",
            summary.expired_found,
            summary.successfully_captured,
            summary.already_resolved,
            summary.failed,
        )
        return summary

    def _apply(self, hold_id: str, decision: Decision, now: int) -> ResolutionOutcome:
        try:
            if decision.action is ResolutionAction.VOID:
                hold = self._auth.void_hold(hold_id)
            elif decision.action is ResolutionAction.CAPTURE:
                hold = self._auth.capture_hold(hold_id, metadata=capture_metadata(now))
            else:
                return ResolutionOutcome(
                    hold_id=hold_id,
                    action=ResolutionAction.NONE,
                    auth_state=decision.next_state,
                )
        except AlreadyTerminalError:
            # 다른 요청(스윕 등)이 먼저 종결했다. 승자가 남긴 상태를 다시 읽어 보고한다.
            current = self._auth.retrieve_hold(hold_id)
            logger.info(
                "hold already resolved as %s; %s skipped",
                current.status.value,
                decision.action.value,
                extra={"hold_id": hold_id},
            )
            return ResolutionOutcome(
                hold_id=hold_id,
                action=ResolutionAction.NONE,
                auth_state=current.status,
            )

        logger.info(
            "hold resolved",
            extra={"hold_id": hold_id, "action": decision.action.value},
        )
        return ResolutionOutcome(
            hold_id=hold_id, action=decision.action, auth_state=hold.status
        )


def get_resolution_engine(
    auth_service: AuthorizationServiceInterface = Depends(get_authorization_service),
    clock: Clock = Depends(get_clock),
    sweep_config: SweepConfig = Depends(get_sweep_config),
) -> ResolutionEngine:
    """FastAPI DI용 ResolutionEngine 팩토리"""
    repository = CommitmentRepository(auth_service, sweep_config.list_page_size)
    return ResolutionEngine(
        auth_service,
        repository,
        clock=clock,
        sweep_page_size=sweep_config.list_page_size,
    )
