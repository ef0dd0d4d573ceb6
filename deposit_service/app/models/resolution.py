"""해소(void/capture) 결정과 스윕 결과 모델."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel

from .commitment import AuthState


class ResolutionAction(str, Enum):
    VOID = "void"
    CAPTURE = "capture"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class Decision:
    action: ResolutionAction
    next_state: AuthState


class ResolutionOutcome(BaseModel):
    """한 hold 에 대한 해소 시도 결과.

    action 은 이번 호출이 실제로 성공시킨 변경이다. 다른 요청이 먼저 hold 를
    종결했다면 action 은 NONE 이고 auth_state 는 승자가 남긴 상태다.
    """

    hold_id: str
    action: ResolutionAction
    auth_state: AuthState

    @property
    def status_label(self) -> str:
        if self.action is ResolutionAction.VOID:
            return "voided"
        if self.action is ResolutionAction.CAPTURE:
            return "captured"
        return "no-action"


class SweepSummary(BaseModel):
    total_examined: int = 0
    requires_capture: int = 0
    expired_found: int = 0
    successfully_captured: int = 0
    already_resolved: int = 0
    failed: int = 0
    timestamp: str = ""
