from fastapi import APIRouter

from .commitments import router as commitments_router
from .sweep import router as sweep_router

api_router = APIRouter()
api_router.include_router(
    commitments_router
)  # prefix는 router 파일 내부에서 정의되어 있음 (/commitments)
api_router.include_router(sweep_router)  # /internal/sweep
