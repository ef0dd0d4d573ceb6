from __future__ import annotations

import pytest

from deposit_service.tests.fakes import FakeClock, InMemoryAuthorizationService


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def auth_service(clock: FakeClock) -> InMemoryAuthorizationService:
    return InMemoryAuthorizationService(clock)
