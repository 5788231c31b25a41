import uuid
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel as PydanticModel
from pydantic import Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from leadlink.api.deps import Account, get_current_account, get_db, get_lead_service, require_kind
from leadlink.api.errors import error_response
from leadlink.common.enums import AccountKind
from leadlink.common.exceptions import BadRequestError, PaymentVerificationFailedError
from leadlink.common.logging import get_logger
from leadlink.core.leads.schemas import EnquiryView, LocationSnapshot, VendorMatchView
from leadlink.core.leads.service import LeadLifecycleService
from leadlink.core.matching.geo import search_vendors

router = APIRouter(prefix="/search", tags=["Search"])

logger = get_logger("api.search")

require_user = require_kind(AccountKind.USER)
require_vendor = require_kind(AccountKind.VENDOR)


# ---------- Schemas ----------


class LocationRequest(PydanticModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""


class LocationResponse(PydanticModel):
    success: bool = True
    message: str = ""
    data: LocationSnapshot | None


class EnquireRequest(PydanticModel):
    search_keyword: str = Field(..., max_length=255)
    explanation: str = Field(..., max_length=5000)

    @field_validator("search_keyword", "explanation")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class EnquiryResponse(PydanticModel):
    success: bool = True
    message: str
    data: EnquiryView
    matched_vendors: int


class EnquiryListResponse(PydanticModel):
    success: bool = True
    count: int
    data: list[EnquiryView]


class StatusUpdateRequest(PydanticModel):
    status: str
    response_message: str = Field("", max_length=2000)


class RejectRequest(PydanticModel):
    response_message: str = Field("", max_length=2000)


class MatchResponse(PydanticModel):
    success: bool = True
    message: str
    data: VendorMatchView


class AcceptanceOrderData(PydanticModel):
    order_id: str
    amount: Decimal
    amount_minor: int
    currency: str
    receipt: str
    gateway_public_key: str


class AcceptanceOrderResponse(PydanticModel):
    success: bool = True
    message: str
    data: AcceptanceOrderData


class VerifyPaymentRequest(PydanticModel):
    order_id: str = Field(..., min_length=1, max_length=64)
    payment_id: str = Field(..., min_length=1, max_length=64)
    signature: str = Field(..., min_length=1, max_length=128)


class PaymentView(PydanticModel):
    id: uuid.UUID
    enquiry_id: uuid.UUID | None
    gateway_order_id: str
    gateway_payment_id: str | None
    amount: Decimal
    currency: str
    status: str
    payment_method: str | None
    paid_at: datetime | None
    created_at: datetime
    model_config = {"from_attributes": True}


class PaymentListResponse(PydanticModel):
    success: bool = True
    count: int
    data: list[PaymentView]


class VendorHit(PydanticModel):
    id: uuid.UUID
    business_name: str
    title: str
    city: str | None
    keywords: list[str]
    distance_km: float | None


class VendorSearchResponse(PydanticModel):
    success: bool = True
    count: int
    data: list[VendorHit]


# ---------- User endpoints ----------


@router.put("/location", response_model=LocationResponse)
async def update_location(
    body: LocationRequest,
    account: Account = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    user = account.record
    user.location_latitude = body.latitude
    user.location_longitude = body.longitude
    user.location_address = body.address
    user.location_city = body.city
    user.location_state = body.state
    user.location_pincode = body.pincode
    await db.flush()

    logger.info("Location updated for user %s", user.id)
    return LocationResponse(message="Location updated successfully", data=user.location_snapshot())


@router.get("/location", response_model=LocationResponse)
async def get_location(account: Account = Depends(require_user)):
    user = account.record
    if not user.has_location:
        return LocationResponse(message="No location set", data=None)
    return LocationResponse(data=user.location_snapshot())


@router.post("/enquire", response_model=EnquiryResponse, status_code=201)
async def create_enquiry(
    body: EnquireRequest,
    account: Account = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    leads: LeadLifecycleService = Depends(get_lead_service),
):
    enquiry = await leads.create_enquiry(db, account.id, body.search_keyword, body.explanation)
    return EnquiryResponse(
        message=f"Enquiry sent to {len(enquiry.matches)} vendor(s)",
        data=EnquiryView.model_validate(enquiry),
        matched_vendors=len(enquiry.matches),
    )


@router.get("/my-enquiries", response_model=EnquiryListResponse)
async def my_enquiries(
    account: Account = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    leads: LeadLifecycleService = Depends(get_lead_service),
):
    enquiries = await leads.list_user_enquiries(db, account.id)
    return EnquiryListResponse(
        count=len(enquiries),
        data=[EnquiryView.model_validate(e) for e in enquiries],
    )


# ---------- Vendor endpoints ----------


@router.get("/vendor/enquiries", response_model=EnquiryListResponse)
async def vendor_enquiries(
    account: Account = Depends(require_vendor),
    db: AsyncSession = Depends(get_db),
    leads: LeadLifecycleService = Depends(get_lead_service),
):
    enquiries = await leads.list_vendor_enquiries(db, account.id)
    return EnquiryListResponse(
        count=len(enquiries),
        data=[EnquiryView.model_validate(e).for_vendor(account.id) for e in enquiries],
    )


@router.put("/enquiry/{enquiry_id}/status", response_model=MatchResponse)
async def update_enquiry_status(
    enquiry_id: uuid.UUID,
    body: StatusUpdateRequest,
    account: Account = Depends(require_vendor),
    db: AsyncSession = Depends(get_db),
    leads: LeadLifecycleService = Depends(get_lead_service),
):
    match = await leads.update_status(db, enquiry_id, account.id, body.status, body.response_message)
    return MatchResponse(
        message=f"Enquiry {match.status} successfully",
        data=VendorMatchView.model_validate(match),
    )


@router.post("/enquiry/{enquiry_id}/accept/payment", response_model=AcceptanceOrderResponse)
async def accept_with_payment(
    enquiry_id: uuid.UUID,
    account: Account = Depends(require_vendor),
    db: AsyncSession = Depends(get_db),
    leads: LeadLifecycleService = Depends(get_lead_service),
):
    order = await leads.initiate_acceptance(db, enquiry_id, account.id)
    return AcceptanceOrderResponse(
        message="Payment order created. Complete the payment to accept this enquiry",
        data=AcceptanceOrderData(
            **order.model_dump(),
            gateway_public_key=leads.payments.public_key,
        ),
    )


@router.post("/enquiry/{enquiry_id}/verify-payment", response_model=MatchResponse)
async def verify_payment(
    enquiry_id: uuid.UUID,
    body: VerifyPaymentRequest,
    account: Account = Depends(require_vendor),
    db: AsyncSession = Depends(get_db),
    leads: LeadLifecycleService = Depends(get_lead_service),
):
    result = await leads.settle_payment(
        db, enquiry_id, account.id, body.order_id, body.payment_id, body.signature
    )

    # Returned rather than raised so the failed payment and the lead revert are committed
    if not result.verified:
        failure = PaymentVerificationFailedError()
        return error_response(failure.status_code, failure.detail, failure.error_code)
    if result.match is None:
        return error_response(
            409,
            "Payment recorded but the enquiry is no longer awaiting this payment",
            "CONFLICTING_STATE",
        )

    return MatchResponse(
        message="Payment verified. Enquiry accepted",
        data=VendorMatchView.model_validate(result.match),
    )


@router.post("/enquiry/{enquiry_id}/reject", response_model=MatchResponse)
async def reject_enquiry(
    enquiry_id: uuid.UUID,
    body: RejectRequest | None = None,
    account: Account = Depends(require_vendor),
    db: AsyncSession = Depends(get_db),
    leads: LeadLifecycleService = Depends(get_lead_service),
):
    message = body.response_message if body else ""
    match = await leads.respond_without_payment(db, enquiry_id, account.id, "rejected", message)
    return MatchResponse(message="Enquiry rejected", data=VendorMatchView.model_validate(match))


@router.get("/vendor/payments", response_model=PaymentListResponse)
async def vendor_payments(
    account: Account = Depends(require_vendor),
    db: AsyncSession = Depends(get_db),
    leads: LeadLifecycleService = Depends(get_lead_service),
):
    payments = await leads.payments.list_vendor_payments(db, account.id)
    return PaymentListResponse(
        count=len(payments),
        data=[PaymentView.model_validate(p) for p in payments],
    )


# ---------- Autocomplete ----------


@router.get("/vendors", response_model=VendorSearchResponse)
async def autocomplete_vendors(
    keyword: str = Query(..., max_length=255),
    latitude: float | None = Query(None, ge=-90, le=90),
    longitude: float | None = Query(None, ge=-180, le=180),
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    if not keyword.strip():
        raise BadRequestError("Search keyword is required")
    if (latitude is None) != (longitude is None):
        raise BadRequestError("latitude and longitude must be given together")

    hits = await search_vendors(db, keyword, latitude, longitude)
    return VendorSearchResponse(
        count=len(hits),
        data=[
            VendorHit(
                id=v.id,
                business_name=v.business_name,
                title=v.title,
                city=v.city,
                keywords=[str(k) for k in v.keywords or []],
                distance_km=distance,
            )
            for v, distance in hits
        ],
    )
