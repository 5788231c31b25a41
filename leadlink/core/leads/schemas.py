import uuid
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel

from leadlink.db.models.enquiry import VendorMatch


class LocationSnapshot(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    address: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""


class UserSummary(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    phone: str | None

    model_config = {"from_attributes": True}


class VendorSummary(BaseModel):
    id: uuid.UUID
    business_name: str
    title: str
    mobile_number: str | None
    email: str
    city: str | None

    model_config = {"from_attributes": True}


class VendorMatchView(BaseModel):
    vendor_id: uuid.UUID
    vendor: VendorSummary | None = None
    distance_km: float
    match_reason: str | None
    status: str
    payment_status: str
    responded_at: datetime | None
    vendor_response: str | None
    gateway_order_id: str | None

    model_config = {"from_attributes": True}


class EnquiryView(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    user: UserSummary | None = None
    search_keyword: str
    explanation: str
    user_location: LocationSnapshot
    matches: list[VendorMatchView]
    status: str
    created_at: datetime
    expires_at: datetime

    model_config = {"from_attributes": True}

    def for_vendor(self, vendor_id: uuid.UUID) -> "EnquiryView":
        """The enquiry as one vendor sees it: only their own lead."""
        return self.model_copy(update={"matches": [m for m in self.matches if m.vendor_id == vendor_id]})


@dataclass
class SettlementResult:
    verified: bool
    match: VendorMatch | None
