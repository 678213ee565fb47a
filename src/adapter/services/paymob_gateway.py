"""Paymob Payment Gateway Implementation

Hosted-checkout handshake (auth token -> order -> payment key -> iframe URL),
HMAC-SHA512 callback verification and refunds over httpx.
"""

import hashlib
import hmac
import logging
from typing import Any, Dict, List, Optional

import httpx

from src.adapter.services.circuit_breaker import CircuitBreaker
from src.app.services.payment_gateway import (
    BillingData,
    GatewayCallback,
    GatewayLineItem,
    PaymentGateway,
    PaymentLink,
    RefundResult,
)
from src.domain.errors import GatewayError, InvalidSignatureError, MalformedPayloadError

logger = logging.getLogger(__name__)

# Order of the fields concatenated into the callback signature
HMAC_FIELDS = (
    "amount_cents",
    "created_at",
    "currency",
    "error_occured",
    "has_parent_transaction",
    "id",
    "integration_id",
    "is_3d_secure",
    "is_auth",
    "is_capture",
    "is_refunded",
    "is_standalone_payment",
    "is_voided",
    "order",
    "owner",
    "pending",
    "source_data_pan",
    "source_data_sub_type",
    "source_data_type",
    "success",
)

PAYMENT_KEY_EXPIRATION_SECONDS = 3600


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1")


def _canonical(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def flatten_callback(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Bring both callback shapes to the flat field names used for signing.

    Processed callbacks nest the transaction under "obj" with "order" and
    "source_data" as objects; response callbacks send flat fields, with
    source data keys either dotted or underscored.
    """
    obj = payload.get("obj")
    if isinstance(obj, dict):
        order = obj.get("order")
        source_data = obj.get("source_data") or {}
        flat = {key: obj.get(key) for key in HMAC_FIELDS if key in obj}
        flat["order"] = order.get("id") if isinstance(order, dict) else order
        flat["source_data_pan"] = source_data.get("pan")
        flat["source_data_sub_type"] = source_data.get("sub_type")
        flat["source_data_type"] = source_data.get("type")
        flat["merchant_order_id"] = order.get("merchant_order_id") if isinstance(order, dict) else None
        parent = obj.get("parent_transaction")
        flat["parent_transaction"] = parent.get("id") if isinstance(parent, dict) else parent
        return flat

    flat = dict(payload)
    for name in ("pan", "sub_type", "type"):
        dotted = f"source_data.{name}"
        if dotted in flat and f"source_data_{name}" not in flat:
            flat[f"source_data_{name}"] = flat.pop(dotted)
    return flat


class PaymobGateway(PaymentGateway):
    """
    Paymob implementation of PaymentGateway

    Every HTTP call goes through the circuit breaker; timeouts and non-2xx
    responses count as failures and surface as GatewayError.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        integration_id: str,
        hmac_secret: str,
        iframe_id: str,
        timeout: float = 10.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.integration_id = integration_id
        self.hmac_secret = hmac_secret
        self.iframe_id = iframe_id
        self.timeout = timeout
        self.circuit_breaker = circuit_breaker or CircuitBreaker("paymob")
        self.transport = transport

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post(path, json=body)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as e:
            logger.error(f"Paymob request {path} timed out after {self.timeout}s")
            raise GatewayError(f"Payment gateway timed out on {path}", reason=str(e)) from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Paymob request {path} failed with status {e.response.status_code}")
            raise GatewayError(
                f"Payment gateway rejected {path}",
                reason=f"status={e.response.status_code}",
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Paymob request {path} failed: {e}")
            raise GatewayError(f"Payment gateway request {path} failed", reason=str(e)) from e

    async def _call(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self.circuit_breaker.call(self._post, path, body)

    @staticmethod
    def _require(data: Dict[str, Any], key: str, path: str) -> Any:
        if data.get(key) in (None, ""):
            raise GatewayError(f"Payment gateway response from {path} has no {key}")
        return data[key]

    async def authenticate(self) -> str:
        data = await self._call("/auth/tokens", {"api_key": self.api_key})
        return self._require(data, "token", "/auth/tokens")

    async def register_order(
        self,
        token: str,
        amount_cents: int,
        merchant_order_id: str,
        items: List[GatewayLineItem],
        currency: str,
    ) -> str:
        data = await self._call(
            "/ecommerce/orders",
            {
                "auth_token": token,
                "delivery_needed": False,
                "amount_cents": amount_cents,
                "currency": currency,
                "merchant_order_id": merchant_order_id,
                "items": [item.model_dump() for item in items],
            },
        )
        return str(self._require(data, "id", "/ecommerce/orders"))

    async def get_payment_key(
        self,
        token: str,
        gateway_order_id: str,
        amount_cents: int,
        billing_data: BillingData,
        currency: str,
    ) -> str:
        data = await self._call(
            "/acceptance/payment_keys",
            {
                "auth_token": token,
                "amount_cents": amount_cents,
                "expiration": PAYMENT_KEY_EXPIRATION_SECONDS,
                "order_id": gateway_order_id,
                "billing_data": billing_data.model_dump(),
                "currency": currency,
                "integration_id": self.integration_id,
            },
        )
        return self._require(data, "token", "/acceptance/payment_keys")

    def iframe_url(self, payment_key: str) -> str:
        return f"{self.base_url}/acceptance/iframes/{self.iframe_id}?payment_token={payment_key}"

    async def create_payment_link(
        self,
        amount_cents: int,
        merchant_order_id: str,
        items: List[GatewayLineItem],
        billing_data: BillingData,
        currency: str,
    ) -> PaymentLink:
        token = await self.authenticate()
        gateway_order_id = await self.register_order(token, amount_cents, merchant_order_id, items, currency)
        payment_key = await self.get_payment_key(token, gateway_order_id, amount_cents, billing_data, currency)
        logger.info(f"Payment link created for order {merchant_order_id} (gateway order {gateway_order_id})")
        return PaymentLink(
            gateway_order_id=gateway_order_id,
            payment_key=payment_key,
            payment_url=self.iframe_url(payment_key),
        )

    def compute_signature(self, flat: Dict[str, Any]) -> str:
        message = "".join(_canonical(flat.get(key)) for key in HMAC_FIELDS)
        return hmac.new(
            self.hmac_secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha512
        ).hexdigest()

    def verify_signature(self, payload: Dict[str, Any], received_hmac: Optional[str] = None) -> bool:
        if not isinstance(payload, dict):
            return False
        signature = received_hmac or payload.get("hmac")
        if not signature:
            return False
        expected = self.compute_signature(flatten_callback(payload))
        return hmac.compare_digest(expected, str(signature).lower())

    def parse_callback(self, payload: Dict[str, Any], received_hmac: Optional[str] = None) -> GatewayCallback:
        if not isinstance(payload, dict):
            raise MalformedPayloadError("Callback payload must be a JSON object")

        flat = flatten_callback(payload)
        missing = [key for key in HMAC_FIELDS if key not in flat]
        missing += [key for key in ("id", "order", "amount_cents") if key in flat and flat[key] in (None, "")]
        if missing:
            raise MalformedPayloadError(
                "Callback payload is missing required fields",
                reason=", ".join(missing),
            )

        signature = received_hmac or payload.get("hmac")
        if not signature:
            raise MalformedPayloadError("Callback payload has no hmac")

        expected = self.compute_signature(flat)
        if not hmac.compare_digest(expected, str(signature).lower()):
            raise InvalidSignatureError("Callback signature does not match")

        return GatewayCallback(
            transaction_id=str(flat["id"]),
            gateway_order_id=str(flat["order"]),
            merchant_order_id=flat.get("merchant_order_id") or None,
            amount_cents=int(flat["amount_cents"]),
            currency=str(flat["currency"]),
            success=_as_bool(flat["success"]),
            pending=_as_bool(flat["pending"]),
            is_refunded=_as_bool(flat["is_refunded"]),
            is_voided=_as_bool(flat["is_voided"]),
            error_occured=_as_bool(flat["error_occured"]),
            parent_transaction_id=(
                str(flat["parent_transaction"]) if flat.get("parent_transaction") not in (None, "") else None
            ),
            payment_method=flat.get("source_data_type") or None,
            raw=payload,
        )

    async def refund(self, gateway_transaction_id: str, amount_cents: int) -> RefundResult:
        token = await self.authenticate()
        data = await self._call(
            "/acceptance/void_refund/refund",
            {
                "auth_token": token,
                "transaction_id": gateway_transaction_id,
                "amount_cents": amount_cents,
            },
        )
        refund_id = self._require(data, "id", "/acceptance/void_refund/refund")
        return RefundResult(
            gateway_transaction_id=str(refund_id),
            success=_as_bool(data.get("success", True)),
            raw=data,
        )
