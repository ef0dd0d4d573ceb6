from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request, status


logger = logging.getLogger(__name__)


async def read_form_body(request: Request) -> dict[str, Any]:
    """JSON, x-www-form-urlencoded, multipart/form-data 바디를 dict 로 읽는다.

    Carrd 폼은 multipart 로, 직접 호출하는 클라이언트는 JSON 으로 보낸다.
    """

    content_type = request.headers.get("content-type", "")

    if "application/json" in content_type:
        try:
            payload = await request.json()
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": "Invalid JSON body"},
            ) from exc
        if not isinstance(payload, dict):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": "JSON body must be an object"},
            )
        return payload

    form = await request.form()
    result: dict[str, Any] = {}
    for key, value in form.multi_items():
        # 파일 업로드 필드는 무시하고, 같은 키가 여러 번 오면 처음 값을 쓴다.
        if isinstance(value, str) and key not in result:
            result[key] = value
    logger.debug("parsed form fields: %s", sorted(result))
    return result
