"""Serialized issuance against a campaign's capacity.

Two layers keep "check eligibility, then count the unit" atomic:

* an in-process ``asyncio.Lock`` per campaign id, so concurrent requests in
  one worker queue up even on backends without row locks (SQLite);
* a ``SELECT ... FOR UPDATE`` on the campaign row, so separate workers and
  replicas serialize on Postgres.

Locks are keyed by campaign id only; issuing against different campaigns
never contends.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from couponhub.core import metrics
from couponhub.core.errors import CampaignNotEligibleError, IllegalCampaignStateError
from couponhub.models.coupon_instance import CouponInstance, CouponInstanceStatus
from couponhub.services import campaign_store

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CampaignLockRegistry:
    """Hands out one lock per campaign id and forgets it once nobody waits on it."""

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._holders: Counter[int] = Counter()

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, campaign_id: int) -> bool:
        lock = self._locks.get(campaign_id)
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def hold(self, campaign_id: int) -> AsyncIterator[None]:
        lock = self._locks.get(campaign_id)
        if lock is None:
            lock = self._locks[campaign_id] = asyncio.Lock()
        self._holders[campaign_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._holders[campaign_id] -= 1
            if self._holders[campaign_id] <= 0:
                del self._holders[campaign_id]
                self._locks.pop(campaign_id, None)


class IssuanceCoordinator:
    def __init__(self, locks: CampaignLockRegistry | None = None) -> None:
        self.locks = locks or CampaignLockRegistry()

    async def issue(
        self,
        session: AsyncSession,
        *,
        campaign_id: int,
        holder_id: str,
        now: datetime | None = None,
    ) -> CouponInstance:
        """Grant one coupon instance to ``holder_id`` or raise.

        Raises ``CampaignNotFoundError`` or ``CampaignNotEligibleError``; in
        both cases nothing is written.
        """
        now = now or _now()
        async with self.locks.hold(campaign_id):
            try:
                campaign = await campaign_store.lock_campaign(session, campaign_id)
                if not campaign.is_eligible_for_issuance(now):
                    raise CampaignNotEligibleError(campaign_id)
                campaign.record_issuance(now)
                await campaign_store.save_campaign(session, campaign)
                instance = CouponInstance(
                    campaign=campaign,
                    campaign_id=campaign.id,
                    holder_id=holder_id,
                    status=CouponInstanceStatus.issued,
                    issued_at=now,
                )
                await campaign_store.save_coupon_instance(session, instance)
                await session.commit()
            except CampaignNotEligibleError:
                await session.rollback()
                metrics.record_issuance_rejected()
                logger.info("coupon_issuance_rejected", extra={"campaign_id": campaign_id, "holder_id": holder_id})
                raise
            except IllegalCampaignStateError:
                await session.rollback()
                logger.exception("coupon_issuance_invariant_violated", extra={"campaign_id": campaign_id})
                raise
            except Exception:
                await session.rollback()
                raise

        metrics.record_coupon_issued()
        logger.info(
            "coupon_issued",
            extra={
                "campaign_id": campaign_id,
                "coupon_id": instance.id,
                "holder_id": holder_id,
                "issued_count": campaign.issued_count,
            },
        )
        if campaign.remaining_capacity() == 0:
            logger.info("campaign_capacity_exhausted", extra={"campaign_id": campaign_id, "code": campaign.code})
        return instance


coordinator = IssuanceCoordinator()
