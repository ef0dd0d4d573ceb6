from __future__ import annotations

from typing import Protocol

from ..models.commitment import Commitment


class CommitmentRepositoryInterface(Protocol):
    """CommitmentRepository가 따라야 할 최소한의 계약.

    구현체는 로컬 저장소 없이 결제 대행사의 현재 스냅샷을 매번 읽어 투영한다.
    """

    def find_by_email(self, email: str) -> list[Commitment]:  # pragma: no cover - Protocol
        """최신순(created_at 내림차순) 커밋먼트 목록을 반환한다."""
        ...

    def find_active_by_email(
        self, email: str, now: int
    ) -> list[Commitment]:  # pragma: no cover - Protocol
        """마감 전이고 capture 대기 중인 커밋먼트만 최신순으로 반환한다."""
        ...

    def get(self, hold_id: str) -> Commitment | None:  # pragma: no cover - Protocol
        ...
