"""Publish/subscribe fanout for lead events.

Every participant has one channel: ``vendor-{id}`` or ``user-{id}``.
Delivery is best effort and at most once. Nothing is queued for absent
subscribers, so clients re-fetch state after reconnecting.

The bus is built at application startup and handed to whoever publishes.
Publishing before a transport is attached raises ``NotInitializedError``.
"""

from __future__ import annotations

import uuid
from typing import Any, Protocol

from leadlink.common.enums import NotificationEvent
from leadlink.common.exceptions import NotInitializedError
from leadlink.common.logging import get_logger

logger = get_logger("notifications.bus")


class Transport(Protocol):
    async def broadcast(self, channel: str, event: str, data: dict[str, Any]) -> int:
        """Deliver to every connection joined to ``channel``; return how many received it."""
        ...


def vendor_channel(vendor_id: uuid.UUID | str) -> str:
    return f"vendor-{vendor_id}"


def user_channel(user_id: uuid.UUID | str) -> str:
    return f"user-{user_id}"


class NotificationBus:
    def __init__(self, transport: Transport | None = None) -> None:
        self._transport = transport

    def attach(self, transport: Transport) -> None:
        self._transport = transport
        logger.info("Notification transport attached: %s", type(transport).__name__)

    def detach(self) -> None:
        self._transport = None

    @property
    def is_ready(self) -> bool:
        return self._transport is not None

    @property
    def transport(self) -> Transport:
        if self._transport is None:
            raise NotInitializedError("Notification transport not initialized")
        return self._transport

    async def publish(self, channel: str, event: NotificationEvent, data: dict[str, Any]) -> int:
        delivered = await self.transport.broadcast(channel, event.value, data)
        logger.info("Published %s to %s (%d receivers)", event.value, channel, delivered)
        return delivered

    async def notify_vendor(
        self, vendor_id: uuid.UUID, event: NotificationEvent, data: dict[str, Any]
    ) -> int:
        return await self.publish(vendor_channel(vendor_id), event, data)

    async def notify_user(
        self, user_id: uuid.UUID, event: NotificationEvent, data: dict[str, Any]
    ) -> int:
        return await self.publish(user_channel(user_id), event, data)
