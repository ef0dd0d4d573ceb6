import logging
import re
import time
import uuid
from urllib.parse import parse_qs

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response


REQUEST_ID_HEADER = "X-Request-Id"
SPAN_ID_HEADER = "X-Span-Id"

# 노이즈를 줄이기 위해 로그에서 제외할 엔드포인트 경로 목록
IGNORED_LOG_PATHS: set[str] = {"/health"}

# 로그에 남길 바디 최대 길이
MAX_BODY_LOG_LENGTH = 1024

# 쿼리스트링에서 값을 가릴 키
MASKED_QUERY_KEYS: set[str] = {"email"}

# form-urlencoded 바디에서는 @ 가 %40 으로 인코딩된다.
_EMAIL_REGEX = re.compile(r"([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*(@|%40)([A-Za-z0-9.-]+)")


def mask_emails(text: str) -> str:
    """로그에 남는 email 주소를 첫 글자만 남기고 가린다. (a***@x.com)"""
    return _EMAIL_REGEX.sub(r"\1***\2\3", text)


class RequestTraceMiddleware(BaseHTTPMiddleware):
    """공통 Request/Span ID 로그 미들웨어.

    - X-Request-Id 가 없으면 새로 만들고, request.state 와 응답 헤더에 싣는다.
    - 요청 완료/실패 로그를 남긴다. 바디와 쿼리의 email 은 가려서 남긴다.
    """

    def __init__(self, app, logger: logging.Logger | None = None) -> None:  # type: ignore[override]
        super().__init__(app)
        self._logger = logger or logging.getLogger("request_trace")

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        span_id = request.headers.get(SPAN_ID_HEADER) or "0"

        request.state.request_id = request_id
        request.state.span_id = span_id
        request.state.request_body = await self._read_body_snippet(request)

        should_log = request.url.path not in IGNORED_LOG_PATHS
        start = time.monotonic()

        try:
            response = await call_next(request)
        except Exception:
            if should_log:
                self._logger.exception(
                    "request failed",
                    extra=self._build_log_extra(
                        request, duration=time.monotonic() - start
                    ),
                )
            raise

        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        response.headers.setdefault(SPAN_ID_HEADER, span_id)

        if should_log:
            self._logger.info(
                "completed request",
                extra=self._build_log_extra(
                    request,
                    status=response.status_code,
                    duration=time.monotonic() - start,
                ),
            )

        return response

    async def _read_body_snippet(self, request: Request) -> str | None:
        # 폼 제출(POST)만 바디를 남긴다. 스윕 호출 등 GET 은 바디가 없다.
        if request.method != "POST":
            return None
        body_bytes = await request.body()
        if not body_bytes:
            return None
        text = body_bytes.decode("utf-8", errors="replace")[:MAX_BODY_LOG_LENGTH]
        return mask_emails(text)

    def _build_log_extra(
        self,
        request: Request,
        status: int | None = None,
        duration: float | None = None,
    ) -> dict[str, object]:
        extra: dict[str, object] = {
            "request_id": request.state.request_id,
            "span_id": request.state.span_id,
            "method": request.method,
            "path": request.url.path,
        }

        if request.url.query:
            parsed = parse_qs(request.url.query, keep_blank_values=True)
            extra["query_params"] = {
                key: "***" if key in MASKED_QUERY_KEYS else values[0]
                for key, values in parsed.items()
            }

        body = getattr(request.state, "request_body", None)
        if body:
            extra["body"] = body

        if status is not None:
            extra["status"] = status

        if duration is not None:
            extra["duration"] = f"{duration * 1000:.3f}ms"

        return extra
