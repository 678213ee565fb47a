"""InvoiceComposer

Builds one invoice for a tenant and billing period from the base plan,
active agent add-ons and usage overage. Runs inside the caller's unit of
work and never commits: the caller commits the invoice together with the
subscription change that triggered it.
"""

import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional
from libs.result import Result
from src.app.repositories.agent_subscription_repository import AgentSubscriptionRepository
from src.app.repositories.invoice_line_item_repository import InvoiceLineItemRepository
from src.app.repositories.invoice_repository import InvoiceRepository
from src.app.repositories.subscription_plan_repository import SubscriptionPlanRepository
from src.app.services.tenant_directory import TenantDirectory
from src.domain import quota
from src.domain.errors import ConflictError, InvoiceNumberTakenError, NotFoundError
from src.domain.invoice import Invoice, InvoiceKind, InvoiceStatus, PaymentLinkStatus
from src.domain.invoice_line_item import InvoiceLineItem
from src.domain.subscription import Subscription
from src.domain.subscription_plan import SubscriptionPlan

logger = logging.getLogger(__name__)

INVOICE_NUMBER_ATTEMPTS = 3


class InvoiceComposer:
    """
    Domain service: compose an invoice for (tenant, kind, period)

    Flow:
    1. Resolve plan and tenant (missing -> NotFoundError, nothing persisted)
    2. Reject an existing invoice of the same kind for the period (ConflictError)
    3. Collect the lines the kind carries; none -> no invoice
    4. Allocate INV-YYYYMMDD-NNNNN
    5. Create the pending invoice shell and its lines
    6. recalculate_total() from the persisted lines

    Kinds:
    - period: base_plan, agent_addon and usage_overage, billed in arrears
    - advance: base_plan only, billed when a trial converts
    - usage: agent_addon and usage_overage for a period paid in advance
    """

    def __init__(
        self,
        plan_repo: SubscriptionPlanRepository,
        invoice_repo: InvoiceRepository,
        line_item_repo: InvoiceLineItemRepository,
        agent_subscription_repo: AgentSubscriptionRepository,
        tenant_directory: TenantDirectory,
        currency: str = "USD",
        due_days: int = 7,
    ):
        self.plan_repo = plan_repo
        self.invoice_repo = invoice_repo
        self.line_item_repo = line_item_repo
        self.agent_subscription_repo = agent_subscription_repo
        self.tenant_directory = tenant_directory
        self.currency = currency
        self.due_days = due_days

    async def compose(
        self,
        tenant_id: str,
        period_start: datetime,
        period_end: datetime,
        subscription: Subscription,
        now: datetime,
        due_date: Optional[datetime] = None,
        notes: Optional[str] = None,
        kind: InvoiceKind = InvoiceKind.PERIOD,
    ) -> Optional[Invoice]:
        # Step 1: Resolve plan and tenant
        plan = await self.plan_repo.get_by_id(subscription.plan_id)
        if not plan:
            raise NotFoundError(f"Plan {subscription.plan_id} not found for subscription {subscription.id}")

        tenant = await self.tenant_directory.get_tenant(tenant_id)
        if not tenant:
            raise NotFoundError(f"Tenant {tenant_id} not found")

        # Step 2: One invoice per tenant, kind and period
        if await self.invoice_repo.exists_for_period(tenant_id, period_start, period_end, kind):
            raise ConflictError(
                f"{kind.value.capitalize()} invoice already exists for tenant {tenant_id} and period "
                f"{period_start.isoformat()} - {period_end.isoformat()}"
            )

        # Step 3: Line items for this kind of invoice
        line_items = await self._charges(tenant_id, subscription, plan, kind)
        if not line_items:
            logger.info(
                f"Nothing to bill for subscription {subscription.id} in period "
                f"{period_start.isoformat()} - {period_end.isoformat()}"
            )
            return None

        # Step 4: Invoice number
        invoice_number = await self.invoice_repo.generate_invoice_number(now.date())

        # Step 5: Invoice shell, then its lines
        invoice = await self.invoice_repo.create(
            Invoice(
                tenant_id=tenant_id,
                subscription_id=subscription.id,
                invoice_number=invoice_number,
                kind=kind,
                billing_period_start=period_start,
                billing_period_end=period_end,
                due_date=due_date or period_end + timedelta(days=self.due_days),
                status=InvoiceStatus.PENDING,
                currency=self.currency,
                payment_link_status=PaymentLinkStatus.PENDING,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
        )
        for line_item in line_items:
            line_item.invoice_id = invoice.id
            await self.line_item_repo.create(line_item)

        # Step 6: Totals from persisted lines
        persisted = await self.line_item_repo.list_by_invoice(invoice.id)
        invoice.recalculate_total(persisted)
        invoice = await self.invoice_repo.update(invoice)

        logger.info(
            f"Composed {kind.value} invoice {invoice.invoice_number} for tenant {tenant_id}: "
            f"{len(persisted)} lines, total {invoice.total_amount} {invoice.currency}"
        )
        return invoice

    async def close_period(
        self,
        subscription: Subscription,
        now: datetime,
        notes: Optional[str] = None,
    ) -> Optional[Invoice]:
        """
        Bill whatever is still unbilled for the subscription's current period

        Used at renewal, at a deferred cancellation and at an immediate
        cancellation. Periods are not prorated, so the invoice always covers
        [current_period_start, current_period_end).

        - Base plan billed in advance (trial conversion): a usage invoice
          with add-ons and overage, or nothing when there is none
        - Otherwise: a period invoice with base plan, add-ons and overage

        Raises:
            ConflictError: the closing invoice already exists
        """
        period_start = subscription.current_period_start
        period_end = subscription.current_period_end
        prepaid = await self.invoice_repo.exists_for_period(
            subscription.tenant_id, period_start, period_end, InvoiceKind.ADVANCE
        )
        return await self.compose(
            tenant_id=subscription.tenant_id,
            period_start=period_start,
            period_end=period_end,
            subscription=subscription,
            now=now,
            notes=notes,
            kind=InvoiceKind.USAGE if prepaid else InvoiceKind.PERIOD,
        )

    async def _charges(
        self,
        tenant_id: str,
        subscription: Subscription,
        plan: SubscriptionPlan,
        kind: InvoiceKind,
    ) -> List[InvoiceLineItem]:
        line_items = []
        if kind in (InvoiceKind.PERIOD, InvoiceKind.ADVANCE):
            line_items.append(InvoiceLineItem.base_plan(plan))
        if kind == InvoiceKind.ADVANCE:
            return line_items

        for addon in await self.agent_subscription_repo.list_active_for_tenant(tenant_id):
            line_items.append(InvoiceLineItem.agent_addon(addon))

        overage = quota.overage_executions(subscription)
        if overage > 0 and plan.has_overage_pricing():
            line_items.append(
                InvoiceLineItem.usage_overage(
                    overage,
                    plan.overage_price_per_execution,
                    subscription.execution_quota,
                    subscription.executions_used,
                )
            )
        elif overage > 0:
            logger.warning(
                f"Subscription {subscription.id} used {overage} executions over quota "
                f"but plan {plan.id} has no overage price; nothing billed"
            )
        return line_items


async def retry_on_number_collision(
    operation: Callable[[], Awaitable[Result]],
    attempts: int = INVOICE_NUMBER_ATTEMPTS,
) -> Result:
    """
    Run a composing use case again when its invoice number was taken

    The use case rolls back before returning INVOICE_NUMBER_TAKEN, so every
    attempt starts from a clean transaction and allocates a fresh number.
    """
    for attempt in range(1, attempts + 1):
        result = await operation()
        if result.is_ok() or result.error.code != InvoiceNumberTakenError.code or attempt == attempts:
            return result
        logger.warning(f"Invoice number collision, retrying ({attempt}/{attempts})")
    return result
