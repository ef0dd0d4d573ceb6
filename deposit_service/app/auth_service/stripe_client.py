"""Stripe REST API 기반 AuthorizationService 구현체.

hold 는 capture_method=manual 인 PaymentIntent 이고, Checkout Session 을 통해 생성된다.
결제가 끝나기 전에는 PaymentIntent id 를 알 수 없으므로 생성 시점에는 Checkout Session
id(cs_...)를 hold id 로 돌려주고, 조회/변경 시 PaymentIntent id(pi_...)로 풀어서 쓴다.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import Any

import httpx

from ..config import StripeConfig
from ..exceptions import AlreadyTerminalError, AuthServiceError, HoldNotFoundError
from ..models.commitment import AuthState, CreatedHold, Hold


logger = logging.getLogger(__name__)


PRODUCT_NAME = "Finish or Forfeit – Focus Deposit"

CHECKOUT_SESSION_PREFIX = "cs_"

# 이미 종결된 PaymentIntent 에 cancel/capture 를 호출했을 때 Stripe 가 주는 에러 코드
UNEXPECTED_STATE_CODE = "payment_intent_unexpected_state"
RESOURCE_MISSING_CODE = "resource_missing"

_STATUS_MAP: dict[str, AuthState] = {
    "requires_capture": AuthState.PENDING_CAPTURE,
    "canceled": AuthState.VOIDED,
    "succeeded": AuthState.CAPTURED,
}


def encode_form_params(params: Mapping[str, Any], prefix: str = "") -> dict[str, str]:
    """중첩 dict/list 를 Stripe 의 bracket 표기 form 파라미터로 펼친다.

    예: {"metadata": {"email": "a@x.com"}} -> {"metadata[email]": "a@x.com"}
    """

    flat: dict[str, str] = {}
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, Mapping):
            flat.update(encode_form_params(value, name))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                item_name = f"{name}[{index}]"
                if isinstance(item, Mapping):
                    flat.update(encode_form_params(item, item_name))
                else:
                    flat[item_name] = _stringify(item)
        else:
            flat[name] = _stringify(value)
    return flat


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def to_auth_state(stripe_status: str | None) -> AuthState:
    return _STATUS_MAP.get(stripe_status or "", AuthState.OTHER)


def to_hold(payment_intent: Mapping[str, Any]) -> Hold:
    """Stripe PaymentIntent JSON 을 Hold 로 변환한다."""

    metadata_raw = payment_intent.get("metadata") or {}
    metadata = {str(k): str(v) for k, v in metadata_raw.items() if v is not None}
    return Hold(
        id=str(payment_intent["id"]),
        status=to_auth_state(payment_intent.get("status")),
        amount=int(payment_intent.get("amount") or 0),
        currency=str(payment_intent.get("currency") or "usd"),
        metadata=metadata,
        # Stripe created 는 epoch 초 단위
        created_at=int(payment_intent.get("created") or 0) * 1000,
    )


class StripeAuthorizationService:
    """Stripe PaymentIntent / Checkout Session API 접근 레이어."""

    def __init__(
        self,
        config: StripeConfig,
        success_url: str,
        cancel_url: str,
        client: httpx.Client | None = None,
    ) -> None:
        self._config = config
        self._success_url = success_url
        self._cancel_url = cancel_url
        self._client = client or httpx.Client(
            base_url=config.api_base,
            timeout=config.timeout_seconds,
        )
        self._headers = {
            "Authorization": f"Bearer {config.secret_key}",
            "Stripe-Version": config.api_version,
        }

    def close(self) -> None:
        self._client.close()

    # -------- AuthorizationServiceInterface --------

    def create_hold(
        self,
        amount: int,
        currency: str,
        metadata: dict[str, str],
        description: str,
    ) -> CreatedHold:
        params = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "customer_email": metadata.get("email"),
            "line_items": [
                {
                    "price_data": {
                        "currency": currency,
                        "product_data": {
                            "name": PRODUCT_NAME,
                            "description": description,
                        },
                        "unit_amount": amount,
                    },
                    "quantity": 1,
                }
            ],
            "payment_intent_data": {
                "capture_method": "manual",
                "metadata": metadata,
            },
            "metadata": metadata,
            "success_url": self._success_url,
            "cancel_url": self._cancel_url,
        }
        session = self._request("POST", "/v1/checkout/sessions", data=params)
        return CreatedHold(hold_id=str(session["id"]), collection_url=str(session["url"]))

    def retrieve_hold(self, hold_id: str) -> Hold:
        if hold_id.startswith(CHECKOUT_SESSION_PREFIX):
            session = self._request(
                "GET",
                f"/v1/checkout/sessions/{hold_id}",
                params={"expand[]": "payment_intent"},
                hold_id=hold_id,
            )
            payment_intent = session.get("payment_intent")
            if not payment_intent:
                # 사용자가 아직 결제를 마치지 않은 세션
                raise HoldNotFoundError(
                    f"checkout session {hold_id} has no payment intent yet",
                    status_code=404,
                )
            if isinstance(payment_intent, str):
                return self._retrieve_payment_intent(payment_intent)
            return to_hold(payment_intent)

        return self._retrieve_payment_intent(hold_id)

    def list_holds(self, limit: int, status: AuthState | None = None) -> list[Hold]:
        # PaymentIntent list API 는 status 필터를 지원하지 않아 클라이언트에서 거른다.
        page = self._request("GET", "/v1/payment_intents", params={"limit": limit})
        holds = [to_hold(item) for item in page.get("data") or []]
        if status is None:
            return holds
        return [hold for hold in holds if hold.status is status]

    def iter_holds(
        self, page_size: int, status: AuthState | None = None
    ) -> Iterator[Hold]:
        starting_after: str | None = None
        while True:
            params: dict[str, Any] = {"limit": page_size}
            if starting_after:
                params["starting_after"] = starting_after
            page = self._request("GET", "/v1/payment_intents", params=params)
            data = page.get("data") or []
            for item in data:
                hold = to_hold(item)
                if status is None or hold.status is status:
                    yield hold
            if not page.get("has_more") or not data:
                return
            starting_after = str(data[-1]["id"])

    def void_hold(self, hold_id: str) -> Hold:
        intent_id = self._resolve_payment_intent_id(hold_id)
        payment_intent = self._request(
            "POST",
            f"/v1/payment_intents/{intent_id}/cancel",
            hold_id=intent_id,
        )
        return to_hold(payment_intent)

    def capture_hold(
        self, hold_id: str, metadata: dict[str, str] | None = None
    ) -> Hold:
        intent_id = self._resolve_payment_intent_id(hold_id)
        data = {"metadata": metadata} if metadata else None
        payment_intent = self._request(
            "POST",
            f"/v1/payment_intents/{intent_id}/capture",
            data=data,
            hold_id=intent_id,
        )
        return to_hold(payment_intent)

    # -------- helpers --------

    def _retrieve_payment_intent(self, intent_id: str) -> Hold:
        payment_intent = self._request(
            "GET", f"/v1/payment_intents/{intent_id}", hold_id=intent_id
        )
        return to_hold(payment_intent)

    def _resolve_payment_intent_id(self, hold_id: str) -> str:
        if hold_id.startswith(CHECKOUT_SESSION_PREFIX):
            return self.retrieve_hold(hold_id).id
        return hold_id

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        data: Mapping[str, Any] | None = None,
        hold_id: str | None = None,
    ) -> dict[str, Any]:
        try:
            resp = self._client.request(
                method,
                path,
                params=params,
                data=encode_form_params(data) if data else None,
                headers=self._headers,
            )
        except httpx.RequestError as exc:
            raise AuthServiceError(f"failed to call Stripe {method} {path}: {exc}") from exc

        if resp.status_code < 400:
            return resp.json()

        error = _error_body(resp)
        code = error.get("code")
        message = error.get("message") or resp.text[:500]

        if hold_id and code == UNEXPECTED_STATE_CODE:
            raise AlreadyTerminalError(hold_id, message)
        if resp.status_code == 404 or code == RESOURCE_MISSING_CODE:
            raise HoldNotFoundError(message, status_code=resp.status_code, code=code)

        logger.warning(
            "Stripe request failed: %s %s -> %s (%s)",
            method,
            path,
            resp.status_code,
            code,
        )
        raise AuthServiceError(message, status_code=resp.status_code, code=code)


def _error_body(resp: httpx.Response) -> dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {}
    if not isinstance(body, dict):
        return {}
    error = body.get("error")
    return error if isinstance(error, dict) else {}
