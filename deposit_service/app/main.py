from __future__ import annotations

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from common.logger import setup_logger
from common.middleware.request_trace import RequestTraceMiddleware

from .api.health import router as health_router
from .api.v1 import api_router
from .auth_service.client import close_authorization_service
from .config import load_config
from .scheduler.sweep_scheduler import start_sweep_scheduler, stop_sweep_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """애플리케이션 생명주기 동안 백그라운드 작업을 관리한다.

    - (선택) 만료 hold 스윕 스케줄러 스레드
    - Stripe HTTP 클라이언트 정리
    """

    # 필수 설정(STRIPE_SECRET_KEY, SITE_URL)이 없으면 기동 단계에서 바로 실패한다.
    config = load_config()
    start_sweep_scheduler(config.sweep.interval_seconds)
    try:
        yield
    finally:
        stop_sweep_scheduler()
        close_authorization_service()


def create_app() -> FastAPI:
    setup_logger(name="deposit-service")
    app = FastAPI(
        title="Finish or Forfeit Deposit Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    # 공통 Request/Span ID 로그 미들웨어
    app.add_middleware(RequestTraceMiddleware)

    app.include_router(health_router, tags=["health"])
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


def main() -> None:
    """명령행에서 실행할 수 있도록 uvicorn 런처를 제공한다."""

    import uvicorn

    port = int(os.getenv("DEPOSIT_SERVICE_PORT", "8003"))
    uvicorn.run(
        "deposit_service.app.main:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        access_log=False,
    )


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
