from decimal import Decimal

from pydantic import BaseModel


class AcceptanceOrder(BaseModel):
    order_id: str
    amount: Decimal
    amount_minor: int
    currency: str
    receipt: str
