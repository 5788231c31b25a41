from sqlalchemy import Boolean, Float, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from leadlink.common.enums import VendorRegistrationStatus
from leadlink.db.base import BaseModel


class Vendor(BaseModel):
    __tablename__ = "vendors"

    business_name: Mapped[str] = mapped_column(String(500), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    contact_person: Mapped[str | None] = mapped_column(String(255), nullable=True)
    mobile_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    state: Mapped[str | None] = mapped_column(String(120), nullable=True)
    pincode: Mapped[str | None] = mapped_column(String(20), nullable=True)
    business_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    business_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    keywords: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=list)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    registration_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VendorRegistrationStatus.PENDING.value, index=True
    )
