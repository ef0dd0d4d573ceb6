from __future__ import annotations

from fastapi import APIRouter


router = APIRouter()


@router.get("/health", summary="헬스 체크")
async def health() -> dict[str, str]:
    # 결제 대행사 연결은 확인하지 않는다. 프로세스 생존 여부만 본다.
    return {"status": "ok", "service": "deposit-service"}
