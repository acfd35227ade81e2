from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from uuid import UUID

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession

from estategate.agents.health import AgentHealth
from estategate.agents.notifications import ExpiryNotifier
from estategate.core.access.subscriptions import (
    SWEEPABLE_STATUSES,
    SubscriptionEvent,
    SubscriptionStatus,
    effective_expiration,
    lapsed_status_for,
    next_status,
)
from estategate.core.billing import publish_organization_status
from estategate.core.config import settings
from estategate.core.db import AsyncSessionLocal
from estategate.core.repositories.billing import SubscriptionRepository
from estategate.models.subscription import Subscription

logger = logging.getLogger(__name__)

StatusPublisher = Callable[[UUID, bool], Awaitable[None]]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_past_grace(expiration: datetime, now: datetime, grace: timedelta) -> bool:
    return _as_utc(expiration) < now - grace


@dataclass(slots=True)
class SweepFailure:
    subscription_id: UUID
    organization_id: UUID
    stage: str
    error: str


@dataclass(slots=True)
class SweepReport:
    scanned: int = 0
    transitioned: int = 0
    notified: int = 0
    transitioned_ids: list[UUID] = field(default_factory=list)
    failures: list[SweepFailure] = field(default_factory=list)

    def fail(self, subscription: Subscription, stage: str, error: Exception) -> None:
        self.failures.append(
            SweepFailure(
                subscription_id=subscription.id,
                organization_id=subscription.organization_id,
                stage=stage,
                error=str(error),
            )
        )


class SubscriptionExpirySweep:
    """Move subscriptions whose effective expiration is older than the grace
    window to ``canceled`` or ``expired``.

    Each subscription is handled on its own: the status update is committed
    before the notification is attempted, and a failing notification is only
    reported. Only a lapse of the organization's newest subscription is
    published and notified.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        *,
        notifier: ExpiryNotifier | None = None,
        publisher: StatusPublisher | None = publish_organization_status,
        grace: timedelta | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.notifier = notifier if notifier is not None else ExpiryNotifier(session_factory)
        self.publisher = publisher
        self.grace = grace if grace is not None else timedelta(days=settings.expiry_grace_days)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def run(self) -> SweepReport:
        report = SweepReport()
        now = self.clock()

        async with self.session_factory() as session:
            candidates = await SubscriptionRepository(session).list_with_status(
                status_value.value for status_value in SWEEPABLE_STATUSES
            )

        for subscription in candidates:
            report.scanned += 1
            expiration = _as_utc(effective_expiration(subscription))
            if not is_past_grace(expiration, now, self.grace):
                continue
            await self._lapse(subscription, expiration, now, report)

        logger.info(
            "Expiry sweep finished scanned=%s transitioned=%s notified=%s failed=%s",
            report.scanned,
            report.transitioned,
            report.notified,
            len(report.failures),
        )
        return report

    async def _lapse(
        self,
        subscription: Subscription,
        expiration: datetime,
        now: datetime,
        report: SweepReport,
    ) -> None:
        target = lapsed_status_for(subscription)
        event = (
            SubscriptionEvent.CANCELED
            if target == SubscriptionStatus.CANCELED
            else SubscriptionEvent.GRACE_EXPIRED
        )

        try:
            current = SubscriptionStatus(subscription.status)
            new_status = next_status(current, event)
            async with self.session_factory() as session:
                updated = await SubscriptionRepository(session).update_where(
                    {
                        "status": new_status.value,
                        "end_date": subscription.end_date or expiration,
                        "updated_at": now,
                    },
                    id=subscription.id,
                    status=subscription.status,
                )
                await session.commit()
        except Exception as exc:
            logger.exception("Subscription transition failed subscription_id=%s", subscription.id)
            report.fail(subscription, "transition", exc)
            return

        if updated == 0:
            # Status changed under us; the next sweep re-evaluates it.
            return

        report.transitioned += 1
        report.transitioned_ids.append(subscription.id)
        logger.info(
            "Subscription lapsed subscription_id=%s organization_id=%s status=%s",
            subscription.id,
            subscription.organization_id,
            new_status.value,
        )

        try:
            async with self.session_factory() as session:
                latest = await SubscriptionRepository(session).latest_for_organization(
                    subscription.organization_id
                )
        except Exception as exc:
            logger.exception("Latest subscription lookup failed organization_id=%s", subscription.organization_id)
            report.fail(subscription, "lookup", exc)
            return

        if latest is not None and latest.id != subscription.id:
            # A newer subscription decides the organization's access.
            logger.info(
                "Skipping status publish for superseded subscription subscription_id=%s latest_id=%s",
                subscription.id,
                latest.id,
            )
            return

        if self.publisher is not None:
            try:
                await self.publisher(subscription.organization_id, False)
            except Exception as exc:
                logger.exception("Organization status publish failed organization_id=%s", subscription.organization_id)
                report.fail(subscription, "publish", exc)

        try:
            report.notified += await self.notifier.notify(subscription, expiration, new_status)
        except Exception as exc:
            logger.exception("Expiry notification failed subscription_id=%s", subscription.id)
            report.fail(subscription, "notification", exc)


class SubscriptionExpiryAgent:
    def __init__(self, sweep: SubscriptionExpirySweep | None = None) -> None:
        self.health = AgentHealth(name="subscription-expiry-agent", ready=True)
        self._stop_event = asyncio.Event()
        self._sweep = sweep or SubscriptionExpirySweep()

    async def stop(self) -> None:
        self._stop_event.set()

    async def run_once(self) -> SweepReport:
        self.health.mark_run()
        report = await self._sweep.run()
        self.health.record(
            subscriptions_scanned=report.scanned,
            subscriptions_transitioned=report.transitioned,
            notifications_sent=report.notified,
            failures=len(report.failures),
        )
        self.health.mark_success()
        return report

    async def run(self) -> None:
        retry_delay = 1
        while not self._stop_event.is_set():
            try:
                await self.run_once()
                retry_delay = 1
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=settings.expiry_sweep_interval_seconds
                )
            except asyncio.TimeoutError:
                continue
            except Exception as exc:  # pragma: no cover - operational path
                self.health.mark_error(exc)
                logger.exception("Subscription expiry agent cycle failed")
                await asyncio.sleep(retry_delay)
                retry_delay = min(retry_delay * 2, settings.expiry_max_retry_delay_seconds)


expiry_agent = SubscriptionExpiryAgent()
app = FastAPI(title="Estategate Subscription Expiry Agent")


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO)
    app.state.task = asyncio.create_task(expiry_agent.run())


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await expiry_agent.stop()
    task: asyncio.Task[None] = app.state.task
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


@app.get("/health", tags=["system"])
async def health() -> dict[str, object]:
    return expiry_agent.health.payload()


@app.get("/ready", tags=["system"])
async def ready() -> dict[str, bool]:
    return {"ready": expiry_agent.health.ready}
