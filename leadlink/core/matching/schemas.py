import uuid

from pydantic import BaseModel


class VendorCandidate(BaseModel):
    vendor_id: uuid.UUID
    distance_km: float
    match_reason: str
