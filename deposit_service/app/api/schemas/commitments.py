from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """기존 프론트엔드/크론 클라이언트가 쓰는 camelCase 키로 직렬화한다."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResolveResponse(CamelModel):
    """명시적 해소 결과."""

    status: str  # voided | captured | no-action
    hold_id: str
    auth_state: str


class StatusResponse(CamelModel):
    """커밋먼트 상태 조회 결과."""

    status: str
    message: str
    show_message: bool
    goal: str | None = None
    deadline: str | None = None
    email: str | None = None


class SweepResponse(CamelModel):
    """스윕 결과 집계."""

    success: bool = True
    total_payments: int
    requires_capture: int
    expired_found: int
    successfully_captured: int
    already_resolved: int
    failed: int
    timestamp: str
