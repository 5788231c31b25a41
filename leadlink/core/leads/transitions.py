"""VendorMatch state machine.

Every status change is a single conditional UPDATE guarded by the status the
caller expects to find. Zero affected rows means another caller got there
first (or the enquiry expired) and the transition did not happen.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import Select, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leadlink.common.enums import EnquiryStatus, MatchStatus
from leadlink.db.base import utcnow
from leadlink.db.models.enquiry import Enquiry, VendorMatch

ALLOWED_TRANSITIONS: dict[MatchStatus, frozenset[MatchStatus]] = {
    MatchStatus.PENDING: frozenset({MatchStatus.PAYMENT_PENDING, MatchStatus.REJECTED}),
    MatchStatus.PAYMENT_PENDING: frozenset({MatchStatus.ACCEPTED, MatchStatus.PENDING}),
    MatchStatus.ACCEPTED: frozenset(),
    MatchStatus.REJECTED: frozenset(),
}

# Legacy status endpoint: acceptance without going through the payment gate
UNPAID_TRANSITIONS: dict[MatchStatus, frozenset[MatchStatus]] = {
    MatchStatus.PENDING: frozenset({MatchStatus.ACCEPTED}),
}

TERMINAL_STATES = frozenset(s for s, nxt in ALLOWED_TRANSITIONS.items() if not nxt)


def can_transition(current: MatchStatus, target: MatchStatus, allow_unpaid: bool = False) -> bool:
    if target in ALLOWED_TRANSITIONS.get(current, frozenset()):
        return True
    return allow_unpaid and target in UNPAID_TRANSITIONS.get(current, frozenset())


def live_enquiry_ids() -> Select:
    return select(Enquiry.id).where(
        Enquiry.status == EnquiryStatus.ACTIVE.value,
        Enquiry.expires_at > utcnow(),
        Enquiry.is_deleted.is_(False),
    )


async def transition_match(
    db: AsyncSession,
    expected: MatchStatus,
    target: MatchStatus,
    *,
    enquiry_id: uuid.UUID | None = None,
    vendor_id: uuid.UUID | None = None,
    gateway_order_id: str | None = None,
    values: dict[str, Any] | None = None,
    allow_unpaid: bool = False,
) -> bool:
    """Move one match from ``expected`` to ``target``. Returns False if no row matched."""
    if not can_transition(expected, target, allow_unpaid=allow_unpaid):
        raise ValueError(f"Illegal lead transition {expected.value} -> {target.value}")

    conditions = [
        VendorMatch.status == expected.value,
        VendorMatch.is_deleted.is_(False),
        VendorMatch.enquiry_id.in_(live_enquiry_ids()),
    ]
    if gateway_order_id is not None:
        conditions.append(VendorMatch.gateway_order_id == gateway_order_id)
    elif enquiry_id is not None and vendor_id is not None:
        conditions.extend([VendorMatch.enquiry_id == enquiry_id, VendorMatch.vendor_id == vendor_id])
    else:
        raise ValueError("A transition needs (enquiry_id, vendor_id) or gateway_order_id")

    result = await db.execute(
        update(VendorMatch)
        .where(*conditions)
        .values(status=target.value, **(values or {}))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0
