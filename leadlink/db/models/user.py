from sqlalchemy import Float, String
from sqlalchemy.orm import Mapped, mapped_column

from leadlink.common.enums import UserRole
from leadlink.db.base import BaseModel


class User(BaseModel):
    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    role: Mapped[UserRole] = mapped_column(String(20), nullable=False, default=UserRole.USER)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    # Last reported location; enquiries take a frozen copy of it
    location_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    location_city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    location_state: Mapped[str | None] = mapped_column(String(120), nullable=True)
    location_pincode: Mapped[str | None] = mapped_column(String(20), nullable=True)

    @property
    def has_location(self) -> bool:
        return self.location_latitude is not None and self.location_longitude is not None

    def location_snapshot(self) -> dict:
        return {
            "latitude": self.location_latitude,
            "longitude": self.location_longitude,
            "address": self.location_address or "",
            "city": self.location_city or "",
            "state": self.location_state or "",
            "pincode": self.location_pincode or "",
        }
