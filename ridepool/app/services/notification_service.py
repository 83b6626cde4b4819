"""
Notification Service.

Persists in-app notifications and delivers engine side effects to the
notification sink. Delivery is best-effort: a failed notification is logged
and dropped, it never undoes the transition that produced it.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol

from sqlalchemy import select, update, desc
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ridepool.app.core.reliability import CircuitBreaker, CircuitOpenError
from ridepool.app.domain.rides.outcomes import NotifyEffect
from ridepool.app.models.notification import Notification, NotificationKind

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def notify(
        self,
        user_id: int,
        kind: NotificationKind,
        ride_id: int,
        payload: Dict[str, Any],
    ) -> None:
        ...


class NotificationService:

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        user_id: int,
        kind: NotificationKind,
        ride_id: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None
    ) -> Notification:
        """Create a single notification."""
        notif = Notification(
            user_id=user_id,
            kind=kind,
            ride_id=ride_id,
            payload=payload
        )
        db.add(notif)
        await db.flush()  # Caller commits
        return notif

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: int,
        unread_only: bool = False,
        limit: int = 50
    ) -> List[Notification]:
        """Most recent notifications for a user."""
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        query = query.order_by(desc(Notification.created_at), desc(Notification.id)).limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> bool:
        """Mark a notification as read."""
        stmt = update(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).values(
            is_read=True,
            read_at=datetime.utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: int) -> int:
        """Mark all notifications for user as read."""
        stmt = update(Notification).where(
            Notification.user_id == user_id,
            Notification.is_read.is_(False)
        ).values(
            is_read=True,
            read_at=datetime.utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount


class InAppNotificationSink:
    """NotificationSink that writes to the notifications table in its own session."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def notify(
        self,
        user_id: int,
        kind: NotificationKind,
        ride_id: int,
        payload: Dict[str, Any],
    ) -> None:
        async with self.session_factory() as session:
            await NotificationService.create_notification(
                session, user_id=user_id, kind=kind, ride_id=ride_id, payload=payload
            )
            await session.commit()


class NotificationDispatcher:
    """Delivers NotifyEffects to a sink behind a circuit breaker."""

    def __init__(self, sink: NotificationSink, breaker: Optional[CircuitBreaker] = None):
        self.sink = sink
        self.breaker = breaker or CircuitBreaker()

    async def dispatch(self, effects: Iterable[NotifyEffect]) -> int:
        """
        Emit every effect, swallowing failures.

        Returns:
            Number of notifications the sink accepted
        """
        delivered = 0
        for effect in effects:
            try:
                await self.breaker.call(
                    self.sink.notify,
                    effect.user_id,
                    effect.kind,
                    effect.ride_id,
                    dict(effect.payload),
                )
                delivered += 1
            except CircuitOpenError:
                logger.warning(
                    "Notification sink circuit open, dropping %s for user %s on ride %s",
                    effect.kind.value, effect.user_id, effect.ride_id
                )
            except Exception:
                logger.exception(
                    "Failed to deliver %s to user %s on ride %s",
                    effect.kind.value, effect.user_id, effect.ride_id
                )
        return delivered
