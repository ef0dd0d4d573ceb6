import json
import logging
import os
import sys


# JsonFormatter 가 extra 로 받아 그대로 출력하는 필드 목록
EXTRA_LOG_KEYS = (
    "request_id",
    "span_id",
    "method",
    "path",
    "query_params",
    "status",
    "body",
    "duration",
    "hold_id",
    "email",
    "action",
)

# 요청마다 INFO 로그를 남기는 서드파티 로거. Stripe 호출은 stripe_client 가 직접 남긴다.
QUIET_LOGGERS = ("httpx", "httpcore")


def _resolve_level(level: str | None) -> int:
    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    return getattr(logging, name, logging.INFO)


def setup_logger(name: str = "deposit-service", level: str | None = None) -> logging.Logger:
    """서비스 로거와 루트 로거에 JSON 핸들러를 설정하고 서비스 로거를 반환한다.

    Args:
        name: 서비스 이름 (SERVICE_NAME 환경변수가 있으면 그 값을 쓴다)
        level: 로그 레벨 (None 이면 LOG_LEVEL 환경변수, 기본 INFO)
    """
    log_level = _resolve_level(level)
    service_name = os.getenv("SERVICE_NAME", name)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(JsonFormatter(service_name=service_name))

    service_logger = logging.getLogger(service_name)
    service_logger.handlers.clear()
    service_logger.addHandler(handler)
    service_logger.setLevel(log_level)
    service_logger.propagate = False

    # deposit_service.app.* 모듈 로거와 request_trace 로거는 루트로 전파된다.
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    for quiet in QUIET_LOGGERS:
        logging.getLogger(quiet).setLevel(max(log_level, logging.WARNING))

    return service_logger


class JsonFormatter(logging.Formatter):
    """구조화 로그 수집을 위한 간단한 JSON 포맷터.

    - datetime, level, logger, message 필드를 기본으로 포함한다.
    - EXTRA_LOG_KEYS 에 있는 extra 필드는 그대로 추가한다.
    - 예외 정보가 있으면 exc_info 필드에 문자열로 추가한다.
    """

    def __init__(self, service_name: str | None = None) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S")
        self._service_name = service_name

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        log_record: dict[str, object] = {
            "datetime": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in EXTRA_LOG_KEYS:
            if hasattr(record, key):
                log_record[key] = getattr(record, key)

        service_name = (
            getattr(record, "service_name", None)
            or os.getenv("SERVICE_NAME")
            or self._service_name
        )
        if service_name:
            log_record["service_name"] = service_name

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_record, ensure_ascii=False, default=str)
