from __future__ import annotations

import pytest

from deposit_service.app.exceptions import EnumerationError, HoldNotFoundError
from deposit_service.app.models.commitment import AuthState, COMMITMENT_WINDOW_MS
from deposit_service.app.models.resolution import ResolutionAction
from deposit_service.app.repositories.commitment_repository import CommitmentRepository
from deposit_service.app.services.resolution_engine import ResolutionEngine, decide
from deposit_service.app.services.status_reporter import describe
from deposit_service.tests.fakes import FakeClock, InMemoryAuthorizationService


def _engine(
    auth_service: InMemoryAuthorizationService,
    clock,
    page_size: int = 100,
) -> ResolutionEngine:
    return ResolutionEngine(
        auth_service,
        CommitmentRepository(auth_service, page_size),
        clock=clock,
        sweep_page_size=page_size,
    )


# -------- decide() --------


@pytest.mark.parametrize(
    ("state", "now", "complete", "expected_action", "expected_state"),
    [
        (AuthState.PENDING_CAPTURE, 999, True, ResolutionAction.VOID, AuthState.VOIDED),
        (AuthState.PENDING_CAPTURE, 999, False, ResolutionAction.NONE, AuthState.PENDING_CAPTURE),
        (AuthState.PENDING_CAPTURE, 1000, True, ResolutionAction.CAPTURE, AuthState.CAPTURED),
        (AuthState.PENDING_CAPTURE, 1001, False, ResolutionAction.CAPTURE, AuthState.CAPTURED),
        (AuthState.VOIDED, 1001, False, ResolutionAction.NONE, AuthState.VOIDED),
        (AuthState.CAPTURED, 999, True, ResolutionAction.NONE, AuthState.CAPTURED),
        (AuthState.OTHER, 999, True, ResolutionAction.NONE, AuthState.OTHER),
    ],
)
def test_decide_transition_table(
    state: AuthState,
    now: int,
    complete: bool,
    expected_action: ResolutionAction,
    expected_state: AuthState,
) -> None:
    decision = decide(state, now, 1000, complete)

    assert decision.action is expected_action
    assert decision.next_state is expected_state


def test_decide_without_deadline_takes_no_action() -> None:
    decision = decide(AuthState.PENDING_CAPTURE, 10**15, None, True)

    assert decision.action is ResolutionAction.NONE
    assert decision.next_state is AuthState.PENDING_CAPTURE


# -------- resolve_on_user_action --------


def test_completion_one_millisecond_before_deadline_voids_hold(
    auth_service: InMemoryAuthorizationService, clock: FakeClock
) -> None:
    hold = auth_service.add_hold()
    deadline = hold.created_at + COMMITMENT_WINDOW_MS
    clock.now = deadline - 1

    outcome = _engine(auth_service, clock).resolve_on_user_action(hold.id, True)

    assert outcome.action is ResolutionAction.VOID
    assert outcome.auth_state is AuthState.VOIDED
    assert outcome.status_label == "voided"
    assert auth_service.void_calls == [hold.id]
    assert auth_service.capture_calls == []

    commitment = CommitmentRepository(auth_service).get(hold.id)
    assert describe(commitment, clock()).status == "completed"


def test_late_completion_does_not_void_and_sweep_captures(
    auth_service: InMemoryAuthorizationService, clock: FakeClock
) -> None:
    hold = auth_service.add_hold()
    clock.now = hold.created_at + COMMITMENT_WINDOW_MS + 1
    engine = _engine(auth_service, clock)

    # 마감 이후 "완료" 클릭은 void 되지 않는다. (명시적 경로에서 바로 capture)
    outcome = engine.resolve_on_user_action(hold.id, True)
    assert auth_service.void_calls == []
    assert outcome.action is ResolutionAction.CAPTURE
    assert outcome.auth_state is AuthState.CAPTURED

    summary = engine.sweep()
    assert summary.successfully_captured == 0

    commitment = CommitmentRepository(auth_service).get(hold.id)
    assert commitment is not None
    assert commitment.auth_state is AuthState.CAPTURED
    assert commitment.captured_reason == "deadline_expired"
    assert describe(commitment, clock()).status == "failed"


def test_late_status_check_leaves_hold_for_sweep(
    auth_service: InMemoryAuthorizationService, clock: FakeClock
) -> None:
    hold = auth_service.add_hold()
    clock.now = hold.created_at + COMMITMENT_WINDOW_MS + 1
    repo = CommitmentRepository(auth_service)

    report = describe(repo.get(hold.id), clock())
    assert report.status == "expired"
    assert auth_service.holds[hold.id].status is AuthState.PENDING_CAPTURE

    summary = _engine(auth_service, clock).sweep()

    assert summary.expired_found == 1
    assert summary.successfully_captured == 1
    assert describe(repo.get(hold.id), clock()).status == "failed"


def test_pending_hold_without_completion_signal_is_left_alone(
    auth_service: InMemoryAuthorizationService, clock: FakeClock
) -> None:
    hold = auth_service.add_hold()
    clock.advance(60 * 60 * 1000)

    outcome = _engine(auth_service, clock).resolve_on_user_action(hold.id, False)

    assert outcome.action is ResolutionAction.NONE
    assert outcome.auth_state is AuthState.PENDING_CAPTURE
    assert outcome.status_label == "no-action"
    assert auth_service.void_calls == []
    assert auth_service.capture_calls == []


def test_completing_twice_is_idempotent(
    auth_service: InMemoryAuthorizationService, clock: FakeClock
) -> None:
    hold = auth_service.add_hold()
    engine = _engine(auth_service, clock)

    first = engine.resolve_on_user_action(hold.id, True)
    second = engine.resolve_on_user_action(hold.id, True)

    assert first.auth_state is AuthState.VOIDED
    assert second.auth_state is AuthState.VOIDED
    assert second.action is ResolutionAction.NONE
    # 이미 종결된 hold 는 다시 void 를 호출하지 않는다.
    assert auth_service.void_calls == [hold.id]


def test_unknown_hold_propagates_not_found(
    auth_service: InMemoryAuthorizationService, clock: FakeClock
) -> None:
    with pytest.raises(HoldNotFoundError):
        _engine(auth_service, clock).resolve_on_user_action("pi_missing", True)


def test_hold_without_commitment_metadata_is_ignored(
    auth_service: InMemoryAuthorizationService, clock: FakeClock
) -> None:
    foreign = auth_service.add_hold(metadata={"order_id": "A-1"})

    outcome = _engine(auth_service, clock).resolve_on_user_action(foreign.id, True)

    assert outcome.action is ResolutionAction.NONE
    assert auth_service.void_calls == []


# -------- race between user action and sweep --------


def test_race_sweep_wins_when_it_mutates_first(
    auth_service: InMemoryAuthorizationService,
) -> None:
    hold = auth_service.add_hold()
    deadline = hold.created_at + COMMITMENT_WINDOW_MS
    user_engine = _engine(auth_service, lambda: deadline - 1)
    sweep_engine = _engine(auth_service, lambda: deadline + 1)

    summary = sweep_engine.sweep()
    outcome = user_engine.resolve_on_user_action(hold.id, True)

    assert summary.successfully_captured == 1
    assert outcome.action is ResolutionAction.NONE
    assert outcome.auth_state is AuthState.CAPTURED
    assert auth_service.holds[hold.id].status is AuthState.CAPTURED


def test_race_user_wins_when_it_mutates_first(
    auth_service: InMemoryAuthorizationService,
) -> None:
    hold = auth_service.add_hold()
    deadline = hold.created_at + COMMITMENT_WINDOW_MS
    user_engine = _engine(auth_service, lambda: deadline - 1)
    sweep_engine = _engine(auth_service, lambda: deadline + 1)

    outcome = user_engine.resolve_on_user_action(hold.id, True)
    summary = sweep_engine.sweep()

    assert outcome.action is ResolutionAction.VOID
    assert summary.total_examined == 1
    assert summary.requires_capture == 0
    assert summary.successfully_captured == 0
    assert auth_service.holds[hold.id].status is AuthState.VOIDED


def test_race_user_loses_after_reading_stale_pending_state(
    auth_service: InMemoryAuthorizationService,
) -> None:
    hold = auth_service.add_hold()
    deadline = hold.created_at + COMMITMENT_WINDOW_MS
    user_engine = _engine(auth_service, lambda: deadline - 1)

    # 사용자 요청이 hold 를 읽은 직후, void 직전에 스윕이 capture 한다.
    original_void = auth_service.void_hold

    def void_after_concurrent_capture(hold_id: str):
        auth_service.capture_hold(hold_id, {"captured_reason": "deadline_expired"})
        return original_void(hold_id)

    auth_service.void_hold = void_after_concurrent_capture  # type: ignore[method-assign]

    outcome = user_engine.resolve_on_user_action(hold.id, True)

    assert outcome.action is ResolutionAction.NONE
    assert outcome.auth_state is AuthState.CAPTURED
    assert len(auth_service.capture_calls) == 1


# -------- sweep --------


def test_sweep_with_no_pending_holds(
    auth_service: InMemoryAuthorizationService, clock: FakeClock
) -> None:
    auth_service.add_hold(status=AuthState.VOIDED)

    summary = _engine(auth_service, clock).sweep()

    assert summary.expired_found == 0
    assert summary.successfully_captured == 0
    assert auth_service.capture_calls == []


def test_sweep_captures_only_expired_holds(
    auth_service: InMemoryAuthorizationService, clock: FakeClock
) -> None:
    expired = auth_service.add_hold(
        email="late@x.com", created_at=clock() - COMMITMENT_WINDOW_MS - 5
    )
    boundary = auth_service.add_hold(
        email="edge@x.com", created_at=clock() - COMMITMENT_WINDOW_MS
    )
    active = auth_service.add_hold(email="ontime@x.com", created_at=clock() - 1000)
    auth_service.add_hold(metadata={"order_id": "foreign"})

    summary = _engine(auth_service, clock).sweep()

    assert summary.total_examined == 4
    assert summary.requires_capture == 3
    assert summary.expired_found == 2
    assert summary.successfully_captured == 2
    captured_ids = {hold_id for hold_id, _ in auth_service.capture_calls}
    assert captured_ids == {expired.id, boundary.id}
    assert auth_service.holds[active.id].status is AuthState.PENDING_CAPTURE
    _, metadata = auth_service.capture_calls[0]
    assert metadata is not None
    assert metadata["captured_reason"] == "deadline_expired"
    assert metadata["captured_at"].startswith("2026-10-18T00:00:00")
    assert summary.timestamp == "2026-10-18T00:00:00+00:00"


def test_sweep_twice_never_captures_twice(
    auth_service: InMemoryAuthorizationService, clock: FakeClock
) -> None:
    hold = auth_service.add_hold(created_at=clock() - COMMITMENT_WINDOW_MS - 1)
    engine = _engine(auth_service, clock)

    first = engine.sweep()
    second = engine.sweep()

    assert first.successfully_captured == 1
    assert second.successfully_captured == 0
    assert second.expired_found == 0
    assert auth_service.capture_calls == [
        (hold.id, auth_service.capture_calls[0][1])
    ]


def test_sweep_isolates_single_capture_failure(
    auth_service: InMemoryAuthorizationService, clock: FakeClock
) -> None:
    past = clock() - COMMITMENT_WINDOW_MS - 1
    bad = auth_service.add_hold(email="bad@x.com", created_at=past)
    good = auth_service.add_hold(email="good@x.com", created_at=past + 1)
    auth_service.fail_capture_ids.add(bad.id)

    summary = _engine(auth_service, clock).sweep()

    assert summary.expired_found == 2
    assert summary.successfully_captured == 1
    assert summary.failed == 1
    assert auth_service.holds[good.id].status is AuthState.CAPTURED
    assert auth_service.holds[bad.id].status is AuthState.PENDING_CAPTURE


def test_sweep_continues_after_unexpected_capture_error(
    auth_service: InMemoryAuthorizationService, clock: FakeClock
) -> None:
    past = clock() - COMMITMENT_WINDOW_MS - 1
    bad = auth_service.add_hold(email="bad@x.com", created_at=past + 1)
    good = auth_service.add_hold(email="good@x.com", created_at=past)
    original_capture = auth_service.capture_hold

    def capture_with_broken_response(hold_id: str, metadata=None):
        if hold_id == bad.id:
            raise ValueError("capture response was not JSON")
        return original_capture(hold_id, metadata)

    auth_service.capture_hold = capture_with_broken_response  # type: ignore[method-assign]

    summary = _engine(auth_service, clock).sweep()

    assert summary.expired_found == 2
    assert summary.failed == 1
    assert summary.successfully_captured == 1
    assert auth_service.holds[good.id].status is AuthState.CAPTURED


def test_sweep_counts_every_listed_hold(
    auth_service: InMemoryAuthorizationService, clock: FakeClock
) -> None:
    auth_service.add_hold(status=AuthState.VOIDED)
    auth_service.add_hold(status=AuthState.CAPTURED)
    auth_service.add_hold(status=AuthState.OTHER)
    auth_service.add_hold(created_at=clock() - 1000)

    summary = _engine(auth_service, clock).sweep()

    assert summary.total_examined == 4
    assert summary.requires_capture == 1
    assert summary.expired_found == 0


def test_sweep_walks_every_page(
    auth_service: InMemoryAuthorizationService, clock: FakeClock
) -> None:
    past = clock() - COMMITMENT_WINDOW_MS - 1
    for index in range(7):
        auth_service.add_hold(email=f"user{index}@x.com", created_at=past - index)

    summary = _engine(auth_service, clock, page_size=3).sweep()

    assert auth_service.list_calls == [3, 3, 3]
    assert summary.successfully_captured == 7


def test_sweep_raises_when_holds_cannot_be_listed(
    auth_service: InMemoryAuthorizationService, clock: FakeClock
) -> None:
    auth_service.fail_listing = True

    with pytest.raises(EnumerationError):
        _engine(auth_service, clock).sweep()


# -------- complete_latest_for_email --------


def test_complete_latest_for_email_voids_newest_active_hold(
    auth_service: InMemoryAuthorizationService, clock: FakeClock
) -> None:
    older = auth_service.add_hold(email="a@x.com", created_at=clock() - 2000)
    newer = auth_service.add_hold(email="A@X.com ", created_at=clock() - 1000)

    outcome = _engine(auth_service, clock).complete_latest_for_email(
        " A@x.com", accomplishment="wrote 600 words"
    )

    assert outcome is not None
    assert outcome.hold_id == newer.id
    assert outcome.auth_state is AuthState.VOIDED
    assert auth_service.holds[older.id].status is AuthState.PENDING_CAPTURE


def test_complete_latest_for_email_ignores_expired_holds(
    auth_service: InMemoryAuthorizationService, clock: FakeClock
) -> None:
    auth_service.add_hold(created_at=clock() - COMMITMENT_WINDOW_MS - 1)

    outcome = _engine(auth_service, clock).complete_latest_for_email("a@x.com")

    assert outcome is None
    assert auth_service.void_calls == []
