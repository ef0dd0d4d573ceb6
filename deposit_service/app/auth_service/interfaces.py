from __future__ import annotations

from collections.abc import Iterator
from typing import Protocol

from ..models.commitment import AuthState, CreatedHold, Hold


class AuthorizationServiceInterface(Protocol):
    """결제 대행사(hold/capture/void)가 따라야 할 최소한의 계약.

    서비스 레이어는 이 인터페이스에만 의존하고, 구체 구현(Stripe 등)은 몰라도 된다.
    void/capture 는 hold 당 최초 한 번만 성공해야 하며, 이미 종결된 hold 에 대한
    호출은 부작용 없이 AlreadyTerminalError 를 발생시켜야 한다.
    """

    def create_hold(
        self,
        amount: int,
        currency: str,
        metadata: dict[str, str],
        description: str,
    ) -> CreatedHold:  # pragma: no cover - Protocol
        """manual capture 모드로 hold 를 만든다."""
        ...

    def retrieve_hold(self, hold_id: str) -> Hold:  # pragma: no cover - Protocol
        ...

    def list_holds(
        self, limit: int, status: AuthState | None = None
    ) -> list[Hold]:  # pragma: no cover - Protocol
        """최신순 한 페이지만 조회한다."""
        ...

    def iter_holds(
        self, page_size: int, status: AuthState | None = None
    ) -> Iterator[Hold]:  # pragma: no cover - Protocol
        """모든 페이지를 순회한다."""
        ...

    def void_hold(self, hold_id: str) -> Hold:  # pragma: no cover - Protocol
        ...

    def capture_hold(
        self, hold_id: str, metadata: dict[str, str] | None = None
    ) -> Hold:  # pragma: no cover - Protocol
        ...
