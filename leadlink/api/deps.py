import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Header, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadlink.common.enums import AccountKind
from leadlink.common.exceptions import NotAuthenticatedError, NotInitializedError, PermissionDeniedError
from leadlink.common.security import decode_token
from leadlink.core.leads.service import LeadLifecycleService
from leadlink.core.notifications.bus import NotificationBus
from leadlink.db.models.user import User
from leadlink.db.models.vendor import Vendor
from leadlink.db.session import async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@dataclass(frozen=True)
class Account:
    """The authenticated caller: either an end user or a vendor."""

    id: uuid.UUID
    kind: AccountKind
    role: str
    email: str
    name: str
    record: Any

    @property
    def is_vendor(self) -> bool:
        return self.kind == AccountKind.VENDOR


async def resolve_account(db: AsyncSession, payload: dict) -> Account:
    """Turn decoded token claims into an Account. Raises on unknown or inactive accounts."""
    if payload.get("type") != "access":
        raise NotAuthenticatedError("Invalid token type")

    try:
        account_id = uuid.UUID(payload.get("sub") or "")
    except ValueError:
        raise NotAuthenticatedError("Invalid token payload")

    role = payload.get("role") or AccountKind.USER.value
    if role == AccountKind.VENDOR.value:
        result = await db.execute(
            select(Vendor).where(Vendor.id == account_id, Vendor.is_deleted.is_(False))
        )
        vendor = result.scalar_one_or_none()
        if not vendor:
            raise NotAuthenticatedError("Vendor account not found")
        if not vendor.active:
            raise PermissionDeniedError("Vendor account is inactive")
        return Account(
            id=vendor.id,
            kind=AccountKind.VENDOR,
            role=role,
            email=vendor.email,
            name=vendor.business_name,
            record=vendor,
        )

    result = await db.execute(select(User).where(User.id == account_id, User.is_deleted.is_(False)))
    user = result.scalar_one_or_none()
    if not user:
        raise NotAuthenticatedError("User account not found")
    if not user.is_active:
        raise PermissionDeniedError("User account is inactive")
    return Account(
        id=user.id,
        kind=AccountKind.USER,
        role=user.role,
        email=user.email,
        name=user.name,
        record=user,
    )


async def get_current_account(
    authorization: str | None = Header(None, description="Bearer <token>"),
    db: AsyncSession = Depends(get_db),
) -> Account:
    if not authorization or not authorization.startswith("Bearer "):
        raise NotAuthenticatedError("Missing or malformed authorization header")

    try:
        payload = decode_token(authorization[len("Bearer "):])
    except ValueError:
        raise NotAuthenticatedError("Invalid or expired token")

    return await resolve_account(db, payload)


def require_kind(kind: AccountKind):
    async def kind_checker(account: Account = Depends(get_current_account)) -> Account:
        if account.kind != kind:
            raise PermissionDeniedError(f"This action is only available to {kind.value} accounts")
        return account

    return kind_checker


def get_notification_bus(request: Request) -> NotificationBus:
    bus = getattr(request.app.state, "bus", None)
    if bus is None:
        raise NotInitializedError("Notification bus not initialized; is the app lifespan running?")
    return bus


def get_lead_service(bus: NotificationBus = Depends(get_notification_bus)) -> LeadLifecycleService:
    return LeadLifecycleService(bus)
