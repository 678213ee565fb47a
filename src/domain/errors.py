"""Billing error taxonomy

Every error carries a stable ``code`` that use cases copy into
``libs.result.Error`` and the API maps to an HTTP status.
"""

from typing import Optional


class BillingError(Exception):
    code = "BILLING_ERROR"

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason


class ValidationError(BillingError):
    """Malformed input, e.g. unknown or inactive plan"""

    code = "VALIDATION_ERROR"


class MalformedPayloadError(ValidationError):
    code = "MALFORMED_PAYLOAD"


class NotFoundError(BillingError):
    """Tenant, invoice, plan or subscription missing"""

    code = "NOT_FOUND"


class ConflictError(BillingError):
    """Duplicate active subscription, invoice-number collision, concurrent renewal"""

    code = "CONFLICT"


class InvalidTransitionError(ConflictError):
    code = "INVALID_TRANSITION"


class InvoiceNumberTakenError(ConflictError):
    """Another transaction committed the invoice number first; retry the whole unit"""

    code = "INVOICE_NUMBER_TAKEN"


class QuotaExceededError(BillingError):
    """Surfaced to the admission boundary, never fatal to the system"""

    code = "QUOTA_EXCEEDED"


class GatewayError(BillingError):
    """Timeout, auth or protocol failure from the payment provider"""

    code = "GATEWAY_ERROR"


class GatewayUnavailableError(GatewayError):
    """Raised without calling the provider while the circuit is open"""

    code = "GATEWAY_UNAVAILABLE"


class InvalidSignatureError(BillingError):
    code = "INVALID_SIGNATURE"


class InvariantViolation(BillingError):
    """A billing invariant does not hold. This is a bug, never corrected silently."""

    code = "INVARIANT_VIOLATION"
