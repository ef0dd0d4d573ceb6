from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime, timezone


# 현재 시각을 epoch 밀리초로 반환하는 함수. 테스트에서는 가짜 시계로 교체한다.
Clock = Callable[[], int]


def system_clock() -> int:
    return int(time.time() * 1000)


def millis_to_iso8601(value: int) -> str:
    """epoch 밀리초를 UTC ISO8601 문자열로 변환한다."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()


def get_clock() -> Clock:
    """FastAPI DI용 시계. 테스트에서는 dependency_overrides 로 교체한다."""
    return system_clock
