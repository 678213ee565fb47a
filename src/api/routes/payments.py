"""Payment gateway webhook"""

import json
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlmodel.ext.asyncio.session import AsyncSession

from libs.result import Error
from src.app.use_cases.billing.dtos import WebhookResultDTO
from src.app.use_cases.billing.handle_payment_webhook import HandlePaymentWebhook
from src.adapter.repositories.invoice_repository import SqlAlchemyInvoiceRepository
from src.adapter.repositories.payment_transaction_repository import SqlAlchemyPaymentTransactionRepository
from src.adapter.repositories.subscription_repository import SqlAlchemySubscriptionRepository
from src.adapter.services.unit_of_work import SqlAlchemyUnitOfWork
from src.app.services.clock import Clock
from src.app.services.payment_gateway import PaymentGateway
from src.depends import get_clock, get_payment_gateway, get_session
from src.api.error import ClientError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing/payments", tags=["Payments"])


@router.post(
    "/webhook",
    response_model=WebhookResultDTO,
    status_code=status.HTTP_200_OK,
    responses={
        400: {
            "description": "Malformed payload or invalid signature",
            "content": {
                "application/json": {
                    "example": {
                        "error": {
                            "code": "INVALID_SIGNATURE",
                            "message": "Callback signature does not match"
                        }
                    }
                }
            }
        },
        404: {"description": "No invoice matches the notification"},
    }
)
async def payment_webhook(
    request: Request,
    hmac: Optional[str] = Query(default=None),
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
):
    """
    Transaction callback from the payment gateway.

    The signature is read from the `hmac` query parameter or the body.
    Replays of an already applied transaction return 200 with `duplicate: true`.
    """
    try:
        payload = json.loads(await request.body())
    except ValueError:
        raise ClientError(Error(code="MALFORMED_PAYLOAD", message="Body is not valid JSON"))

    use_case = HandlePaymentWebhook(
        SqlAlchemyUnitOfWork(session),
        SqlAlchemyInvoiceRepository(session),
        SqlAlchemyPaymentTransactionRepository(session),
        SqlAlchemySubscriptionRepository(session),
        gateway,
        clock,
    )
    result = await use_case.execute(payload, received_hmac=hmac)

    if result.is_err():
        raise ClientError(result.error)

    return result.value
