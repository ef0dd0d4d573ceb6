from __future__ import annotations

import logging
import threading

from ..auth_service.client import get_authorization_service
from ..clock import system_clock
from ..config import load_sweep_config
from ..repositories.commitment_repository import CommitmentRepository
from ..services.resolution_engine import ResolutionEngine


logger = logging.getLogger(__name__)


_SWEEP_SCHEDULER_THREAD: threading.Thread | None = None
_SWEEP_SCHEDULER_STOP_EVENT: threading.Event | None = None


def _build_engine() -> ResolutionEngine:
    sweep_config = load_sweep_config()
    auth_service = get_authorization_service()
    return ResolutionEngine(
        auth_service,
        CommitmentRepository(auth_service, sweep_config.list_page_size),
        clock=system_clock,
        sweep_page_size=sweep_config.list_page_size,
    )


def _run_sweep_once(
    label: str, engine: ResolutionEngine | None = None
) -> ResolutionEngine | None:
    """스윕을 한 번 실행하고, 이후 실행에 재사용할 엔진을 반환한다.

    엔진 생성(설정/Stripe 클라이언트)이나 스윕이 실패해도 예외를 올리지 않는다.
    엔진을 만들지 못했으면 None 을 반환해 다음 주기에 다시 만든다.
    """
    logger.info("expired hold sweep starting (%s)", label)
    try:
        if engine is None:
            engine = _build_engine()
        summary = engine.sweep()
        logger.info(
            "expired hold sweep completed (%s): %d expired, %d captured",
            label,
            summary.expired_found,
            summary.successfully_captured,
        )
    except Exception:  # noqa: BLE001
        # 다음 주기에 자연스럽게 재시도된다.
        logger.exception("expired hold sweep failed (%s)", label)
    return engine


def _run_scheduler_loop(stop_event: threading.Event, interval: float) -> None:
    logger.info("sweep scheduler thread started (interval=%.0f seconds)", interval)

    try:
        # 최초 실행
        engine = _run_sweep_once("initial run")

        # 주기적 실행
        while not stop_event.wait(interval):
            engine = _run_sweep_once("scheduled run", engine)
    finally:
        logger.info("sweep scheduler thread stopped")


def start_sweep_scheduler(interval_seconds: float) -> bool:
    """만료 hold 스윕 스케줄러 스레드를 시작한다.

    FastAPI lifespan 에서 호출된다. interval 이 0 이하면 외부 스케줄러(크론)가
    /internal/sweep 을 호출한다고 보고 아무것도 하지 않는다.
    """

    global _SWEEP_SCHEDULER_THREAD, _SWEEP_SCHEDULER_STOP_EVENT

    if interval_seconds <= 0:
        logger.info("sweep scheduler disabled; relying on external scheduler")
        return False

    if _SWEEP_SCHEDULER_THREAD and _SWEEP_SCHEDULER_THREAD.is_alive():
        return True

    stop_event = threading.Event()
    thread = threading.Thread(
        target=_run_scheduler_loop,
        args=(stop_event, interval_seconds),
        name="sweep-scheduler",
        daemon=True,
    )

    _SWEEP_SCHEDULER_STOP_EVENT = stop_event
    _SWEEP_SCHEDULER_THREAD = thread

    thread.start()
    logger.info("sweep scheduler thread launched")
    return True


def stop_sweep_scheduler() -> None:
    """스윕 스케줄러 스레드를 정지한다.

    FastAPI lifespan 종료 시 호출된다.
    """

    global _SWEEP_SCHEDULER_THREAD, _SWEEP_SCHEDULER_STOP_EVENT

    if _SWEEP_SCHEDULER_THREAD is None or _SWEEP_SCHEDULER_STOP_EVENT is None:
        return

    _SWEEP_SCHEDULER_STOP_EVENT.set()
    _SWEEP_SCHEDULER_THREAD.join(timeout=10.0)

    _SWEEP_SCHEDULER_THREAD = None
    _SWEEP_SCHEDULER_STOP_EVENT = None

    logger.info("sweep scheduler thread stopped by shutdown")
