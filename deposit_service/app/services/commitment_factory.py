"""커밋먼트 생성 서비스.

보증금 hold 를 manual capture 로 만들고, email/goal/deadline 을 hold metadata 에
담아 별도 DB 없이도 hold 자체로 커밋먼트를 복원할 수 있게 한다.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from fastapi import Depends

from ..auth_service.client import get_authorization_service
from ..auth_service.interfaces import AuthorizationServiceInterface
from ..clock import Clock, get_clock, system_clock
from ..exceptions import ValidationError
from ..models.commitment import (
    COMMITMENT_WINDOW_MS,
    CheckoutRedirect,
    DEPOSIT_AMOUNT_MINOR,
    DEPOSIT_CURRENCY,
    normalize_email,
)


logger = logging.getLogger(__name__)


EMAIL_FIELD_ALIASES = ("email", "Email")
GOAL_FIELD_ALIASES = ("goal", "Goal")


def first_field(form: Mapping[str, Any], aliases: tuple[str, ...]) -> str | None:
    """별칭 목록 중 처음으로 비어 있지 않은 값을 반환한다."""
    for name in aliases:
        value = form.get(name)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def extract_commitment_fields(form: Mapping[str, Any]) -> tuple[str, str]:
    """폼/JSON 바디에서 (email, goal) 을 꺼낸다. 누락 시 ValidationError."""
    email = normalize_email(first_field(form, EMAIL_FIELD_ALIASES))
    goal = first_field(form, GOAL_FIELD_ALIASES) or ""
    _validate(email, goal)
    return email, goal


def _validate(email: str, goal: str) -> None:
    if not email or not goal:
        missing = [name for name, value in (("email", email), ("goal", goal)) if not value]
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)} (email and goal are required)"
        )


class CommitmentFactory:
    def __init__(
        self,
        auth_service: AuthorizationServiceInterface,
        clock: Clock = system_clock,
    ) -> None:
        self._auth = auth_service
        self._clock = clock

    def create_commitment(self, email: str, goal: str) -> CheckoutRedirect:
        """새 커밋먼트 hold 를 만들고 결제 페이지 리다이렉트 정보를 반환한다.

        hold 생성은 호출마다 새 hold 를 만들기 때문에 자동 재시도하지 않는다.
        AuthServiceError 는 그대로 전파한다.
        """
        email = normalize_email(email)
        goal = (goal or "").strip()
        _validate(email, goal)

        deadline = self._clock() + COMMITMENT_WINDOW_MS
        created = self._auth.create_hold(
            amount=DEPOSIT_AMOUNT_MINOR,
            currency=DEPOSIT_CURRENCY,
            metadata={"email": email, "goal": goal, "deadline": str(deadline)},
            description=f'Goal: "{goal}"',
        )
        logger.info(
            "commitment hold created",
            extra={"hold_id": created.hold_id, "email": email},
        )
        return CheckoutRedirect(
            hold_id=created.hold_id,
            url=created.collection_url,
            deadline=deadline,
        )


def get_commitment_factory(
    auth_service: AuthorizationServiceInterface = Depends(get_authorization_service),
    clock: Clock = Depends(get_clock),
) -> CommitmentFactory:
    """FastAPI DI용 CommitmentFactory 팩토리"""
    return CommitmentFactory(auth_service, clock)
