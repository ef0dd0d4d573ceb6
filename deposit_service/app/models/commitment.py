"""커밋먼트(보증금) 도메인 모델.

커밋먼트는 로컬에 저장되지 않는다. 결제 대행사의 hold 레코드(metadata 포함)를
읽을 때마다 Commitment 로 재구성한다.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


# 보증금 금액은 단 하나만 존재한다 ($5.00).
DEPOSIT_AMOUNT_MINOR = 500
DEPOSIT_CURRENCY = "usd"

# 생성 시점부터 마감까지 24시간
COMMITMENT_WINDOW_MS = 24 * 60 * 60 * 1000

CAPTURED_REASON_DEADLINE_EXPIRED = "deadline_expired"


class AuthState(str, Enum):
    """결제 대행사 hold 의 수명주기 상태."""

    PENDING_CAPTURE = "pending_capture"
    VOIDED = "voided"
    CAPTURED = "captured"
    OTHER = "other"


class Hold(BaseModel):
    """결제 대행사가 돌려주는 provider 중립적인 hold 레코드."""

    id: str
    status: AuthState
    amount: int
    currency: str = DEPOSIT_CURRENCY
    metadata: dict[str, str] = Field(default_factory=dict)
    created_at: int  # epoch ms


class CreatedHold(BaseModel):
    """hold 생성 결과. collection_url 로 사용자를 보내 결제를 받는다."""

    hold_id: str
    collection_url: str


class Commitment(BaseModel):
    """hold 로부터 투영한 커밋먼트 뷰."""

    id: str
    email: str  # 소문자, 공백 제거
    goal: str
    amount: int = DEPOSIT_AMOUNT_MINOR
    deadline: int  # epoch ms
    auth_state: AuthState
    created_at: int  # epoch ms
    captured_at: str | None = None
    captured_reason: str | None = None


class CheckoutRedirect(BaseModel):
    """커밋먼트 생성 후 결제 페이지로 보낼 리다이렉트 정보."""

    hold_id: str
    url: str
    deadline: int


class StatusReport(BaseModel):
    """사용자에게 보여줄 상태/메시지."""

    status: str  # completed | failed | active | expired | unknown | no_payments
    message: str
    show_message: bool
    goal: str | None = None
    deadline: str | None = None  # ISO8601
    email: str | None = None


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def is_expired(now: int, deadline: int) -> bool:
    """마감 판정. 사용자 요청 경로와 스윕 경로가 모두 이 함수를 쓴다."""
    return now >= deadline
