import uuid
from datetime import timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leadlink.common.enums import EnquiryStatus, MatchPaymentStatus, MatchStatus, NotificationEvent
from leadlink.common.exceptions import (
    AlreadyAcceptedError,
    BadRequestError,
    ConflictingStateError,
    NotFoundError,
    NotInitializedError,
    NoVendorsFoundError,
)
from leadlink.common.logging import get_logger
from leadlink.config import settings
from leadlink.core.leads.schemas import EnquiryView, SettlementResult
from leadlink.core.leads.transitions import live_enquiry_ids, transition_match
from leadlink.core.matching.geo import DEFAULT_RADIUS_KM, find_matches, load_matchable_vendors
from leadlink.core.notifications.bus import NotificationBus
from leadlink.core.payments.gate import PaymentGate
from leadlink.core.payments.schemas import AcceptanceOrder
from leadlink.db.base import utcnow
from leadlink.db.models.enquiry import Enquiry, VendorMatch
from leadlink.db.models.payment import Payment
from leadlink.db.models.user import User

logger = get_logger("leads.service")


class LeadLifecycleService:
    def __init__(self, bus: NotificationBus, payment_gate: PaymentGate | None = None):
        if bus is None or not bus.is_ready:
            raise NotInitializedError("LeadLifecycleService needs a notification bus with an attached transport")
        self.bus = bus
        self.payments = payment_gate or PaymentGate()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _enquiry_query(self):
        return (
            select(Enquiry)
            .options(
                selectinload(Enquiry.user),
                selectinload(Enquiry.matches).selectinload(VendorMatch.vendor),
            )
            .where(Enquiry.is_deleted.is_(False), Enquiry.expires_at > utcnow())
            .execution_options(populate_existing=True)
        )

    async def get_enquiry(self, db: AsyncSession, enquiry_id: uuid.UUID) -> Enquiry | None:
        result = await db.execute(self._enquiry_query().where(Enquiry.id == enquiry_id))
        return result.scalar_one_or_none()

    async def list_user_enquiries(self, db: AsyncSession, user_id: uuid.UUID) -> list[Enquiry]:
        result = await db.execute(
            self._enquiry_query().where(Enquiry.user_id == user_id).order_by(Enquiry.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_vendor_enquiries(self, db: AsyncSession, vendor_id: uuid.UUID) -> list[Enquiry]:
        vendor_enquiries = select(VendorMatch.enquiry_id).where(VendorMatch.vendor_id == vendor_id)
        result = await db.execute(
            self._enquiry_query()
            .where(Enquiry.status == EnquiryStatus.ACTIVE.value, Enquiry.id.in_(vendor_enquiries))
            .order_by(Enquiry.created_at.desc())
        )
        return list(result.scalars().all())

    async def _load_match(
        self, db: AsyncSession, enquiry_id: uuid.UUID, vendor_id: uuid.UUID
    ) -> VendorMatch | None:
        result = await db.execute(
            select(VendorMatch)
            .where(
                VendorMatch.enquiry_id == enquiry_id,
                VendorMatch.vendor_id == vendor_id,
                VendorMatch.is_deleted.is_(False),
                VendorMatch.enquiry_id.in_(live_enquiry_ids()),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _enquiry_owner(self, db: AsyncSession, enquiry_id: uuid.UUID) -> uuid.UUID | None:
        result = await db.execute(select(Enquiry.user_id).where(Enquiry.id == enquiry_id))
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Enquiry creation
    # ------------------------------------------------------------------

    async def create_enquiry(
        self, db: AsyncSession, user_id: uuid.UUID, keyword: str, explanation: str
    ) -> Enquiry:
        keyword = keyword.strip()
        if not keyword:
            raise BadRequestError("Search keyword is required")

        result = await db.execute(select(User).where(User.id == user_id, User.is_deleted.is_(False)))
        user = result.scalar_one_or_none()
        if not user:
            raise NotFoundError("User", str(user_id))
        if not user.has_location:
            raise BadRequestError("Please enable location services to search for local vendors")

        vendors = await load_matchable_vendors(db)
        candidates = find_matches(user.location_latitude, user.location_longitude, keyword, vendors)
        if not candidates:
            logger.info("No vendors for '%s' near user %s; enquiry not recorded", keyword, user_id)
            raise NoVendorsFoundError(DEFAULT_RADIUS_KM)

        enquiry = Enquiry(
            user_id=user.id,
            search_keyword=keyword,
            explanation=explanation,
            user_location=user.location_snapshot(),
            status=EnquiryStatus.ACTIVE.value,
            matches=[
                VendorMatch(
                    vendor_id=c.vendor_id,
                    position=i,
                    distance_km=c.distance_km,
                    match_reason=c.match_reason,
                    status=MatchStatus.PENDING.value,
                )
                for i, c in enumerate(candidates)
            ],
        )
        db.add(enquiry)
        await db.flush()

        enquiry = await self.get_enquiry(db, enquiry.id)
        logger.info("Enquiry %s created for '%s' with %d leads", enquiry.id, keyword, len(candidates))

        view = EnquiryView.model_validate(enquiry)
        for candidate in candidates:
            await self._notify_vendor(candidate.vendor_id, NotificationEvent.NEW_ENQUIRY, {
                "enquiry": view.for_vendor(candidate.vendor_id).model_dump(mode="json"),
                "message": f"New enquiry for: {keyword}",
                "match_reason": candidate.match_reason,
                "distance_km": candidate.distance_km,
                "timestamp": utcnow().isoformat(),
            })

        return enquiry

    # ------------------------------------------------------------------
    # Paid acceptance
    # ------------------------------------------------------------------

    async def initiate_acceptance(
        self, db: AsyncSession, enquiry_id: uuid.UUID, vendor_id: uuid.UUID
    ) -> AcceptanceOrder:
        match = await self._load_match(db, enquiry_id, vendor_id)
        if match is None:
            raise NotFoundError("Enquiry", str(enquiry_id))
        if match.status == MatchStatus.ACCEPTED.value:
            raise AlreadyAcceptedError()
        if match.status != MatchStatus.PENDING.value:
            raise ConflictingStateError("Lead", MatchStatus.PENDING.value, match.status)

        order = await self.payments.create_order(db, vendor_id, enquiry_id)

        moved = await transition_match(
            db,
            MatchStatus.PENDING,
            MatchStatus.PAYMENT_PENDING,
            enquiry_id=enquiry_id,
            vendor_id=vendor_id,
            values={"gateway_order_id": order.order_id, "payment_initiated_at": utcnow()},
        )
        if not moved:
            current = await self._current_status(db, enquiry_id, vendor_id)
            logger.warning(
                "Acceptance race lost: enquiry=%s vendor=%s now '%s'", enquiry_id, vendor_id, current
            )
            raise ConflictingStateError("Lead", MatchStatus.PENDING.value, current)

        logger.info("Lead %s/%s awaiting payment on order %s", enquiry_id, vendor_id, order.order_id)
        return order

    async def complete_payment(
        self, db: AsyncSession, gateway_order_id: str, verified: bool
    ) -> VendorMatch | None:
        if verified:
            target = MatchStatus.ACCEPTED
            values = {
                "payment_status": MatchPaymentStatus.PAID.value,
                "responded_at": utcnow(),
                "vendor_response": "Enquiry accepted after payment",
            }
        else:
            target = MatchStatus.PENDING
            values = {"payment_status": MatchPaymentStatus.FAILED.value}

        moved = await transition_match(
            db, MatchStatus.PAYMENT_PENDING, target, gateway_order_id=gateway_order_id, values=values
        )
        if not moved:
            logger.warning("No lead awaiting payment for order %s; nothing changed", gateway_order_id)
            return None

        result = await db.execute(
            select(VendorMatch)
            .where(VendorMatch.gateway_order_id == gateway_order_id)
            .execution_options(populate_existing=True)
        )
        match = result.scalar_one()
        logger.info("Order %s settled: lead %s/%s -> %s", gateway_order_id, match.enquiry_id, match.vendor_id, target.value)

        if verified:
            await self._announce(db, match, "Vendor has accepted your enquiry after payment")
        return match

    async def settle_payment(
        self,
        db: AsyncSession,
        enquiry_id: uuid.UUID,
        vendor_id: uuid.UUID,
        order_id: str,
        payment_id: str,
        signature: str,
    ) -> SettlementResult:
        payment = await self.payments.get_payment(db, order_id)
        if payment is None or payment.vendor_id != vendor_id or payment.enquiry_id != enquiry_id:
            raise NotFoundError("Payment order", order_id)

        verified = self.payments.verify(order_id, payment_id, signature)
        if not verified:
            logger.warning("Signature mismatch for order %s (vendor=%s)", order_id, vendor_id)

        await self.payments.record_outcome(db, order_id, verified, payment_id, signature)
        match = await self.complete_payment(db, order_id, verified)
        return SettlementResult(verified=verified, match=match)

    # ------------------------------------------------------------------
    # Unpaid responses
    # ------------------------------------------------------------------

    async def respond_without_payment(
        self,
        db: AsyncSession,
        enquiry_id: uuid.UUID,
        vendor_id: uuid.UUID,
        decision: str,
        message: str = "",
    ) -> VendorMatch:
        if decision != MatchStatus.REJECTED.value:
            raise BadRequestError("Only rejection is possible without payment")
        return await self._respond(db, enquiry_id, vendor_id, MatchStatus.REJECTED, message)

    async def update_status(
        self,
        db: AsyncSession,
        enquiry_id: uuid.UUID,
        vendor_id: uuid.UUID,
        status: str,
        message: str = "",
    ) -> VendorMatch:
        if status not in (MatchStatus.ACCEPTED.value, MatchStatus.REJECTED.value):
            raise BadRequestError("Status must be accepted or rejected")
        target = MatchStatus(status)
        if target == MatchStatus.ACCEPTED:
            logger.warning(
                "Lead %s/%s accepted through the legacy status path, bypassing payment", enquiry_id, vendor_id
            )
        return await self._respond(db, enquiry_id, vendor_id, target, message, allow_unpaid=True)

    async def _respond(
        self,
        db: AsyncSession,
        enquiry_id: uuid.UUID,
        vendor_id: uuid.UUID,
        target: MatchStatus,
        message: str,
        allow_unpaid: bool = False,
    ) -> VendorMatch:
        moved = await transition_match(
            db,
            MatchStatus.PENDING,
            target,
            enquiry_id=enquiry_id,
            vendor_id=vendor_id,
            values={"responded_at": utcnow(), "vendor_response": message},
            allow_unpaid=allow_unpaid,
        )
        if not moved:
            current = await self._current_status(db, enquiry_id, vendor_id)
            if current is None:
                raise NotFoundError("Enquiry", str(enquiry_id))
            raise ConflictingStateError("Lead", MatchStatus.PENDING.value, current)

        match = await self._load_match(db, enquiry_id, vendor_id)
        logger.info("Lead %s/%s -> %s", enquiry_id, vendor_id, target.value)
        await self._announce(db, match, message or f"Vendor has {target.value} your enquiry")
        return match

    async def _current_status(
        self, db: AsyncSession, enquiry_id: uuid.UUID, vendor_id: uuid.UUID
    ) -> str | None:
        result = await db.execute(
            select(VendorMatch.status).where(
                VendorMatch.enquiry_id == enquiry_id,
                VendorMatch.vendor_id == vendor_id,
                VendorMatch.enquiry_id.in_(live_enquiry_ids()),
            )
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def release_stale_payment_holds(
        self, db: AsyncSession, older_than: timedelta | None = None
    ) -> list[str]:
        """Return leads stuck in payment_pending to pending and cancel their orders."""
        cutoff = utcnow() - (older_than or timedelta(minutes=settings.PAYMENT_HOLD_TIMEOUT_MINUTES))
        result = await db.execute(
            select(VendorMatch.gateway_order_id).where(
                VendorMatch.status == MatchStatus.PAYMENT_PENDING.value,
                VendorMatch.payment_initiated_at < cutoff,
                VendorMatch.gateway_order_id.is_not(None),
            )
        )

        released = []
        for order_id in result.scalars().all():
            if await transition_match(
                db, MatchStatus.PAYMENT_PENDING, MatchStatus.PENDING, gateway_order_id=order_id
            ):
                released.append(order_id)

        cancelled = await self.payments.cancel_pending(db, released)
        if released:
            logger.info("Released %d stale payment holds (%d orders cancelled)", len(released), cancelled)
        return released

    async def purge_expired_enquiries(self, db: AsyncSession) -> int:
        expired = select(Enquiry.id).where(Enquiry.expires_at <= utcnow())

        await db.execute(
            update(Payment)
            .where(Payment.enquiry_id.in_(expired))
            .values(enquiry_id=None)
            .execution_options(synchronize_session=False)
        )
        await db.execute(
            delete(VendorMatch)
            .where(VendorMatch.enquiry_id.in_(expired))
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(
            delete(Enquiry)
            .where(Enquiry.expires_at <= utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info("Purged %d expired enquiries", result.rowcount)
        return result.rowcount

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def _announce(self, db: AsyncSession, match: VendorMatch, message: str) -> None:
        user_id = await self._enquiry_owner(db, match.enquiry_id)
        if user_id is None:
            return
        try:
            await self.bus.notify_user(user_id, NotificationEvent.ENQUIRY_UPDATE, {
                "enquiry_id": str(match.enquiry_id),
                "vendor_id": str(match.vendor_id),
                "status": match.status,
                "message": message,
                "timestamp": utcnow().isoformat(),
            })
        except Exception as e:
            logger.warning("enquiry-update for user %s not delivered: %s", user_id, e)

    async def _notify_vendor(self, vendor_id: uuid.UUID, event: NotificationEvent, data: dict) -> None:
        try:
            await self.bus.notify_vendor(vendor_id, event, data)
        except Exception as e:
            logger.warning("%s for vendor %s not delivered: %s", event.value, vendor_id, e)
