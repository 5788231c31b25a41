"""Payment gate for lead acceptance fees.

Each call to ``create_order`` reserves one gateway order and writes exactly
one ``pending`` Payment row for it. The row is later settled exactly once,
either to ``success``/``failed`` by checkout verification or to
``cancelled`` when a stale hold is released.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

import httpx
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leadlink.common.enums import PaymentStatus
from leadlink.common.exceptions import ConflictingStateError, UpstreamGatewayError
from leadlink.common.logging import get_logger
from leadlink.config import settings
from leadlink.core.payments.schemas import AcceptanceOrder
from leadlink.db.base import utcnow
from leadlink.db.models.payment import Payment
from leadlink.integrations.razorpay_client import RazorpayClient

logger = get_logger("payments.gate")


class PaymentGate:
    def __init__(self, client: RazorpayClient | None = None):
        self.client = client or RazorpayClient()
        self.amount = Decimal(settings.LEAD_ACCEPTANCE_FEE)
        self.currency = settings.LEAD_ACCEPTANCE_CURRENCY

    @property
    def public_key(self) -> str:
        return self.client.public_key

    async def create_order(
        self, db: AsyncSession, vendor_id: uuid.UUID, enquiry_id: uuid.UUID
    ) -> AcceptanceOrder:
        amount_minor = int(self.amount * 100)
        receipt = f"lead_{enquiry_id.hex[:12]}_{vendor_id.hex[:12]}"
        notes = {
            "vendor_id": str(vendor_id),
            "enquiry_id": str(enquiry_id),
            "type": "lead_acceptance",
        }

        try:
            order = await self.client.create_order(
                amount_minor=amount_minor, currency=self.currency, receipt=receipt, notes=notes
            )
            order_id = order["id"]
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error("Order creation failed for vendor=%s enquiry=%s: %s", vendor_id, enquiry_id, e)
            raise UpstreamGatewayError() from e

        db.add(
            Payment(
                vendor_id=vendor_id,
                enquiry_id=enquiry_id,
                gateway_order_id=order_id,
                receipt=receipt,
                amount=self.amount,
                currency=self.currency,
                status=PaymentStatus.PENDING.value,
                notes=notes,
            )
        )
        await db.flush()

        logger.info("Acceptance order %s created for vendor=%s enquiry=%s", order_id, vendor_id, enquiry_id)
        return AcceptanceOrder(
            order_id=order_id,
            amount=self.amount,
            amount_minor=amount_minor,
            currency=self.currency,
            receipt=receipt,
        )

    def verify(self, order_id: str, payment_id: str, signature: str) -> bool:
        return self.client.verify_payment_signature(order_id, payment_id, signature)

    async def get_payment(self, db: AsyncSession, order_id: str) -> Payment | None:
        result = await db.execute(
            select(Payment)
            .where(Payment.gateway_order_id == order_id, Payment.is_deleted.is_(False))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def record_outcome(
        self,
        db: AsyncSession,
        order_id: str,
        verified: bool,
        payment_id: str,
        signature: str,
    ) -> None:
        """Settle a pending Payment. A second settlement of the same order conflicts."""
        values: dict = {"gateway_payment_id": payment_id, "signature": signature}
        if verified:
            values.update(status=PaymentStatus.SUCCESS.value, paid_at=utcnow(), payment_method="razorpay")
        else:
            values.update(status=PaymentStatus.FAILED.value)

        result = await db.execute(
            update(Payment)
            .where(
                Payment.gateway_order_id == order_id,
                Payment.status == PaymentStatus.PENDING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = (
                await db.execute(select(Payment.status).where(Payment.gateway_order_id == order_id))
            ).scalar_one_or_none()
            raise ConflictingStateError("Payment", PaymentStatus.PENDING.value, current)

        logger.info("Payment for order %s marked %s", order_id, values["status"])

    async def cancel_pending(self, db: AsyncSession, order_ids: list[str]) -> int:
        if not order_ids:
            return 0
        result = await db.execute(
            update(Payment)
            .where(
                Payment.gateway_order_id.in_(order_ids),
                Payment.status == PaymentStatus.PENDING.value,
            )
            .values(status=PaymentStatus.CANCELLED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def list_vendor_payments(self, db: AsyncSession, vendor_id: uuid.UUID) -> list[Payment]:
        result = await db.execute(
            select(Payment)
            .where(Payment.vendor_id == vendor_id, Payment.is_deleted.is_(False))
            .order_by(Payment.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
