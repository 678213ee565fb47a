"""Payment Gateway Service Interface

Defines the contract for the hosted-checkout payment provider: creating
payment links, verifying callbacks and issuing refunds.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class GatewayLineItem(BaseModel):
    name: str
    amount_cents: int
    description: str = ""
    quantity: int = 1


class BillingData(BaseModel):
    """Customer details the gateway requires for a payment key"""

    first_name: str = "NA"
    last_name: str = "NA"
    email: str = "NA"
    phone_number: str = "NA"
    street: str = "NA"
    building: str = "NA"
    floor: str = "NA"
    apartment: str = "NA"
    city: str = "NA"
    country: str = "NA"
    postal_code: str = "NA"
    state: str = "NA"


class PaymentLink(BaseModel):
    gateway_order_id: str
    payment_key: str
    payment_url: str


class GatewayCallback(BaseModel):
    """Normalized, signature-verified transaction notification"""

    transaction_id: str = Field(..., description="Gateway transaction id")
    gateway_order_id: str = Field(..., description="Gateway order id")
    merchant_order_id: Optional[str] = Field(
        default=None, description="Our invoice number, echoed back by the gateway"
    )
    amount_cents: int
    currency: str
    success: bool
    pending: bool = False
    is_refunded: bool = False
    is_voided: bool = False
    error_occured: bool = False
    parent_transaction_id: Optional[str] = None
    payment_method: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_refund(self) -> bool:
        return self.is_refunded or self.is_voided


class RefundResult(BaseModel):
    gateway_transaction_id: str
    success: bool
    raw: Dict[str, Any] = Field(default_factory=dict)


class PaymentGateway(ABC):
    """
    Payment gateway interface

    Every outbound call may raise GatewayError (timeouts included) or
    GatewayUnavailableError while the circuit breaker is open.
    """

    @abstractmethod
    async def authenticate(self) -> str:
        """
        Exchange the API key for a short-lived auth token

        Returns:
            Auth token
        """
        pass

    @abstractmethod
    async def register_order(
        self,
        token: str,
        amount_cents: int,
        merchant_order_id: str,
        items: List[GatewayLineItem],
        currency: str,
    ) -> str:
        """
        Register an order with the gateway

        Args:
            token: Auth token from authenticate()
            amount_cents: Order total in the smallest currency unit
            merchant_order_id: Our reference (the invoice number)
            items: Order line items
            currency: ISO 4217 currency code

        Returns:
            Gateway order id
        """
        pass

    @abstractmethod
    async def get_payment_key(
        self,
        token: str,
        gateway_order_id: str,
        amount_cents: int,
        billing_data: BillingData,
        currency: str,
    ) -> str:
        """
        Request a payment key for a registered order

        Returns:
            Payment key used to build the checkout URL
        """
        pass

    @abstractmethod
    async def create_payment_link(
        self,
        amount_cents: int,
        merchant_order_id: str,
        items: List[GatewayLineItem],
        billing_data: BillingData,
        currency: str,
    ) -> PaymentLink:
        """
        Full handshake: authenticate, register order, payment key, checkout URL

        Returns:
            PaymentLink with gateway order id, payment key and URL
        """
        pass

    @abstractmethod
    def verify_signature(self, payload: Dict[str, Any], received_hmac: Optional[str] = None) -> bool:
        """True if the callback's HMAC matches, False otherwise (never raises)"""
        pass

    @abstractmethod
    def parse_callback(self, payload: Dict[str, Any], received_hmac: Optional[str] = None) -> GatewayCallback:
        """
        Normalize and authenticate a transaction callback

        Args:
            payload: Raw callback body (flat fields or a nested transaction object)
            received_hmac: Signature passed outside the body (e.g., query string)

        Returns:
            GatewayCallback

        Raises:
            MalformedPayloadError: required fields are missing
            InvalidSignatureError: the HMAC does not match
        """
        pass

    @abstractmethod
    async def refund(self, gateway_transaction_id: str, amount_cents: int) -> RefundResult:
        """
        Refund a completed transaction

        Returns:
            RefundResult describing the refund transaction
        """
        pass
