from __future__ import annotations

import logging
import threading
from typing import Optional

from ..config import load_site_config, load_stripe_config
from .stripe_client import StripeAuthorizationService


logger = logging.getLogger(__name__)


_service: Optional[StripeAuthorizationService] = None
_lock = threading.Lock()


def get_authorization_service() -> StripeAuthorizationService:
    """전역 StripeAuthorizationService 싱글톤을 반환한다.

    - STRIPE_SECRET_KEY, SITE_URL 등 환경 변수에서 설정을 읽는다.
    - 설정이 없으면 RuntimeError 로 즉시 실패한다.
    """

    global _service

    if _service is not None:
        return _service

    with _lock:
        if _service is not None:
            return _service

        stripe_config = load_stripe_config()
        site_config = load_site_config()
        _service = StripeAuthorizationService(
            stripe_config,
            success_url=site_config.success_url,
            cancel_url=site_config.cancel_url,
        )
        logger.info(
            "Stripe authorization service initialized (api_version=%s)",
            stripe_config.api_version,
        )
        return _service


def close_authorization_service() -> None:
    """앱 종료 시 HTTP 커넥션 풀을 정리한다."""

    global _service

    with _lock:
        if _service is None:
            return
        _service.close()
        _service = None
