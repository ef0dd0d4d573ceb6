"""커밋먼트 레포지토리 구현체.

결제 대행사의 최근 hold 한 페이지를 읽어 metadata email 로 거르는 방식이다.
페이지 크기(기본 100)보다 오래된 hold 는 보이지 않는다. 사용량이 적은 서비스라
허용하는 한계이며, 대행사가 metadata 검색을 지원하면 이 클래스만 교체하면 된다.
"""

from __future__ import annotations

import logging

from .interfaces import CommitmentRepositoryInterface
from ..auth_service.interfaces import AuthorizationServiceInterface
from ..config import MAX_LIST_PAGE_SIZE
from ..models.commitment import (
    AuthState,
    Commitment,
    DEPOSIT_AMOUNT_MINOR,
    Hold,
    is_expired,
    normalize_email,
)


logger = logging.getLogger(__name__)


def parse_deadline(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return None


def to_commitment(hold: Hold) -> Commitment | None:
    """hold 를 Commitment 로 투영한다.

    deadline metadata 가 없으면 이 서비스가 만든 hold 가 아니므로 None 을 반환한다.
    """

    deadline = parse_deadline(hold.metadata.get("deadline"))
    if deadline is None:
        return None

    return Commitment(
        id=hold.id,
        email=normalize_email(hold.metadata.get("email")),
        goal=hold.metadata.get("goal", ""),
        amount=hold.amount or DEPOSIT_AMOUNT_MINOR,
        deadline=deadline,
        auth_state=hold.status,
        created_at=hold.created_at,
        captured_at=hold.metadata.get("captured_at"),
        captured_reason=hold.metadata.get("captured_reason"),
    )


class CommitmentRepository(CommitmentRepositoryInterface):
    """AuthorizationService 를 매번 직접 조회하는 read-through 레포지토리."""

    def __init__(
        self,
        auth_service: AuthorizationServiceInterface,
        page_size: int = MAX_LIST_PAGE_SIZE,
    ) -> None:
        self._auth = auth_service
        self._page_size = page_size

    def find_by_email(self, email: str) -> list[Commitment]:
        normalized = normalize_email(email)
        if not normalized:
            return []

        holds = self._auth.list_holds(limit=self._page_size)
        commitments: list[Commitment] = []
        for hold in holds:
            commitment = to_commitment(hold)
            if commitment is None or commitment.email != normalized:
                continue
            commitments.append(commitment)

        commitments.sort(key=lambda c: c.created_at, reverse=True)
        logger.debug(
            "found %d commitments in %d recent holds", len(commitments), len(holds)
        )
        return commitments

    def find_active_by_email(self, email: str, now: int) -> list[Commitment]:
        return [
            c
            for c in self.find_by_email(email)
            if c.auth_state is AuthState.PENDING_CAPTURE
            and not is_expired(now, c.deadline)
        ]

    def get(self, hold_id: str) -> Commitment | None:
        return to_commitment(self._auth.retrieve_hold(hold_id))
