import uuid
from datetime import datetime, timedelta

from sqlalchemy import CheckConstraint, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leadlink.common.enums import EnquiryStatus, MatchPaymentStatus, MatchStatus
from leadlink.config import settings
from leadlink.db.base import BaseModel, utcnow

MAX_MATCH_DISTANCE_KM = 10.0


def _default_expiry() -> datetime:
    return utcnow() + timedelta(days=settings.ENQUIRY_TTL_DAYS)


class Enquiry(BaseModel):
    __tablename__ = "enquiries"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    search_keyword: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    explanation: Mapped[str] = mapped_column(Text, nullable=False)
    user_location: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EnquiryStatus.ACTIVE.value, index=True
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_default_expiry, index=True
    )

    # Relationships
    user = relationship("User", lazy="selectin")
    matches = relationship(
        "VendorMatch",
        back_populates="enquiry",
        lazy="selectin",
        order_by="VendorMatch.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class VendorMatch(BaseModel):
    __tablename__ = "vendor_matches"
    __table_args__ = (
        UniqueConstraint("enquiry_id", "vendor_id", name="uq_vendor_matches_enquiry_vendor"),
        CheckConstraint(f"distance_km <= {MAX_MATCH_DISTANCE_KM}", name="ck_vendor_matches_radius"),
    )

    enquiry_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("enquiries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vendors.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    distance_km: Mapped[float] = mapped_column(Float, nullable=False)
    match_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=MatchStatus.PENDING.value)
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MatchPaymentStatus.PENDING.value
    )
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    vendor_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    gateway_order_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    payment_initiated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    enquiry = relationship("Enquiry", back_populates="matches")
    vendor = relationship("Vendor", lazy="selectin")
