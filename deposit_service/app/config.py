from __future__ import annotations

import os
from dataclasses import dataclass


STRIPE_SECRET_KEY = "STRIPE_SECRET_KEY"
STRIPE_API_BASE = "STRIPE_API_BASE"
STRIPE_API_VERSION = "STRIPE_API_VERSION"
STRIPE_TIMEOUT_SECONDS = "STRIPE_TIMEOUT_SECONDS"
SITE_URL = "SITE_URL"
LANDING_PAGE_URL = "LANDING_PAGE_URL"
CRON_SECRET = "CRON_SECRET"
DEPOSIT_LIST_PAGE_SIZE = "DEPOSIT_LIST_PAGE_SIZE"
DEPOSIT_SWEEP_INTERVAL_SECONDS = "DEPOSIT_SWEEP_INTERVAL_SECONDS"

DEFAULT_STRIPE_API_BASE = "https://api.stripe.com"
DEFAULT_STRIPE_API_VERSION = "2023-10-16"
DEFAULT_LANDING_PAGE_URL = "https://beattheclock.carrd.co"

# Stripe list API 의 limit 최대값과 같다.
MAX_LIST_PAGE_SIZE = 100


@dataclass(slots=True)
class StripeConfig:
    """Stripe REST API 접속 설정."""

    secret_key: str
    api_base: str = DEFAULT_STRIPE_API_BASE
    api_version: str = DEFAULT_STRIPE_API_VERSION
    timeout_seconds: float = 30.0


@dataclass(slots=True)
class SiteConfig:
    """결제 완료/취소 후 돌아갈 URL 설정."""

    site_url: str
    landing_page_url: str = DEFAULT_LANDING_PAGE_URL

    @property
    def success_url(self) -> str:
        # Stripe 가 {CHECKOUT_SESSION_ID} 를 실제 세션 id 로 치환한다.
        return f"{self.site_url}/done?pi={{CHECKOUT_SESSION_ID}}"

    @property
    def cancel_url(self) -> str:
        return self.site_url

    def landing(self, fragment: str) -> str:
        return f"{self.landing_page_url}#{fragment}"


@dataclass(slots=True)
class SweepConfig:
    """만료 hold 스윕 설정.

    - cron_secret 이 없으면 외부 스윕 엔드포인트는 모든 요청을 거부한다.
    - interval_seconds 가 0 이면 프로세스 내부 스케줄러를 띄우지 않는다.
    """

    cron_secret: str | None = None
    interval_seconds: float = 0.0
    list_page_size: int = MAX_LIST_PAGE_SIZE


@dataclass(slots=True)
class AppConfig:
    """deposit-service 전체 설정."""

    stripe: StripeConfig
    site: SiteConfig
    sweep: SweepConfig


def load_stripe_config() -> StripeConfig:
    secret_key = os.getenv(STRIPE_SECRET_KEY)
    if not secret_key:
        raise RuntimeError(
            f"{STRIPE_SECRET_KEY} environment variable is required for deposit-service",
        )

    api_base = (os.getenv(STRIPE_API_BASE) or DEFAULT_STRIPE_API_BASE).rstrip("/")
    api_version = os.getenv(STRIPE_API_VERSION) or DEFAULT_STRIPE_API_VERSION

    timeout_raw = os.getenv(STRIPE_TIMEOUT_SECONDS)
    if not timeout_raw:
        timeout_seconds = 30.0
    else:
        try:
            timeout_seconds = float(timeout_raw)
        except ValueError as exc:
            raise RuntimeError(
                f"{STRIPE_TIMEOUT_SECONDS} must be a float if set, got: {timeout_raw!r}"
            ) from exc
        if timeout_seconds <= 0:
            raise RuntimeError(
                f"{STRIPE_TIMEOUT_SECONDS} must be > 0, got: {timeout_seconds}"
            )

    return StripeConfig(
        secret_key=secret_key,
        api_base=api_base,
        api_version=api_version,
        timeout_seconds=timeout_seconds,
    )


def load_site_config() -> SiteConfig:
    site_url = (os.getenv(SITE_URL) or "").rstrip("/")
    if not site_url:
        raise RuntimeError(
            f"{SITE_URL} environment variable is required for deposit-service",
        )

    landing_page_url = (
        os.getenv(LANDING_PAGE_URL) or DEFAULT_LANDING_PAGE_URL
    ).rstrip("/")

    return SiteConfig(site_url=site_url, landing_page_url=landing_page_url)


def load_sweep_config() -> SweepConfig:
    cron_secret = os.getenv(CRON_SECRET) or None

    interval_raw = os.getenv(DEPOSIT_SWEEP_INTERVAL_SECONDS)
    if not interval_raw:
        interval_seconds = 0.0
    else:
        try:
            interval_seconds = float(interval_raw)
        except ValueError as exc:
            raise RuntimeError(
                f"{DEPOSIT_SWEEP_INTERVAL_SECONDS} must be a float if set, got: {interval_raw!r}"
            ) from exc
        if interval_seconds < 0:
            raise RuntimeError(
                f"{DEPOSIT_SWEEP_INTERVAL_SECONDS} must be >= 0, got: {interval_seconds}"
            )

    page_size_raw = os.getenv(DEPOSIT_LIST_PAGE_SIZE)
    if not page_size_raw:
        page_size = MAX_LIST_PAGE_SIZE
    else:
        try:
            page_size = int(page_size_raw)
        except ValueError as exc:
            raise RuntimeError(
                f"{DEPOSIT_LIST_PAGE_SIZE} must be an integer if set, got: {page_size_raw!r}"
            ) from exc
        if not 1 <= page_size <= MAX_LIST_PAGE_SIZE:
            raise RuntimeError(
                f"{DEPOSIT_LIST_PAGE_SIZE} must be between 1 and {MAX_LIST_PAGE_SIZE}, got: {page_size}"
            )

    return SweepConfig(
        cron_secret=cron_secret,
        interval_seconds=interval_seconds,
        list_page_size=page_size,
    )


def load_config() -> AppConfig:
    """deposit-service 설정을 로드하여 AppConfig로 반환한다."""

    return AppConfig(
        stripe=load_stripe_config(),
        site=load_site_config(),
        sweep=load_sweep_config(),
    )


def get_site_config() -> SiteConfig:
    """FastAPI DI용 SiteConfig 팩토리."""
    return load_site_config()


def get_sweep_config() -> SweepConfig:
    """FastAPI DI용 SweepConfig 팩토리."""
    return load_sweep_config()
