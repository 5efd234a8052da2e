"""Persistence for campaigns and coupon instances.

All writes go through ``save_campaign``/``save_coupon_instance`` so audit
stamps are applied in one place. Saving flushes but never commits: the
caller owns the transaction.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from couponhub.core.errors import CampaignNotFoundError, CouponInstanceNotFoundError
from couponhub.models.audit import AuditStamp, as_utc
from couponhub.models.campaign import Campaign, CampaignStatus
from couponhub.models.coupon_instance import CouponInstance, CouponInstanceStatus


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _stamp(entity: Campaign | CouponInstance, now: datetime) -> None:
    entity.audit = (entity.audit or AuditStamp()).touched(now)


async def load_campaign(session: AsyncSession, campaign_id: int) -> Campaign:
    campaign = await session.get(Campaign, campaign_id)
    if not campaign:
        raise CampaignNotFoundError(campaign_id)
    return campaign


async def lock_campaign(session: AsyncSession, campaign_id: int) -> Campaign:
    """Load a campaign holding a row-level write lock until the transaction ends.

    ``populate_existing`` makes sure counters are re-read even if the row is
    already in the identity map.
    """
    result = await session.execute(
        select(Campaign)
        .where(Campaign.id == campaign_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    campaign = result.scalar_one_or_none()
    if not campaign:
        raise CampaignNotFoundError(campaign_id)
    return campaign


async def save_campaign(session: AsyncSession, campaign: Campaign) -> Campaign:
    _stamp(campaign, _now())
    session.add(campaign)
    await session.flush()
    return campaign


async def delete_campaign(session: AsyncSession, campaign: Campaign) -> None:
    await session.delete(campaign)
    await session.flush()


async def find_campaign_by_code(session: AsyncSession, code: str) -> Campaign | None:
    result = await session.execute(select(Campaign).where(Campaign.code == code))
    return result.scalar_one_or_none()


async def list_campaigns(session: AsyncSession, *, page: int, size: int) -> tuple[list[Campaign], int]:
    total = int((await session.execute(select(func.count()).select_from(Campaign))).scalar_one())
    result = await session.execute(select(Campaign).order_by(Campaign.id).offset(page * size).limit(size))
    return list(result.scalars().all()), total


async def list_available_campaigns(session: AsyncSession, *, now: datetime) -> list[Campaign]:
    result = await session.execute(
        select(Campaign)
        .where(
            Campaign.status == CampaignStatus.active,
            Campaign.start_date < now,
            Campaign.end_date > now,
            (Campaign.max_issuance.is_(None)) | (Campaign.issued_count < Campaign.max_issuance),
        )
        .order_by(Campaign.end_date, Campaign.id)
    )
    campaigns = list(result.scalars().all())
    # Same predicate as issuance, with strict bounds on both window ends.
    return [campaign for campaign in campaigns if campaign.is_eligible_for_issuance(now)]


async def load_coupon_instance(session: AsyncSession, instance_id: int) -> CouponInstance:
    instance = await session.get(CouponInstance, instance_id)
    if not instance:
        raise CouponInstanceNotFoundError(instance_id)
    return instance


async def lock_coupon_instance(session: AsyncSession, instance_id: int) -> CouponInstance:
    result = await session.execute(
        select(CouponInstance)
        .where(CouponInstance.id == instance_id)
        .with_for_update(of=CouponInstance)
        .execution_options(populate_existing=True)
    )
    instance = result.unique().scalar_one_or_none()
    if not instance:
        raise CouponInstanceNotFoundError(instance_id)
    return instance


async def save_coupon_instance(session: AsyncSession, instance: CouponInstance) -> CouponInstance:
    _stamp(instance, _now())
    session.add(instance)
    await session.flush()
    return instance


async def count_instances_by_campaign(
    session: AsyncSession, campaign_id: int, statuses: Iterable[CouponInstanceStatus]
) -> int:
    wanted = list(statuses)
    if not wanted:
        return 0
    return int(
        (
            await session.execute(
                select(func.count())
                .select_from(CouponInstance)
                .where(CouponInstance.campaign_id == campaign_id, CouponInstance.status.in_(wanted))
            )
        ).scalar_one()
    )


async def list_holder_instances(
    session: AsyncSession, *, holder_id: str, status: CouponInstanceStatus | None = None
) -> list[CouponInstance]:
    stmt = select(CouponInstance).where(CouponInstance.holder_id == holder_id)
    if status is not None:
        stmt = stmt.where(CouponInstance.status == status)
    result = await session.execute(stmt.order_by(CouponInstance.issued_at.desc(), CouponInstance.id.desc()))
    return list(result.unique().scalars().all())


async def count_available_for_holder(session: AsyncSession, *, holder_id: str, now: datetime) -> int:
    """ISSUED instances whose campaign has not ended yet."""
    issued = await list_holder_instances(session, holder_id=holder_id, status=CouponInstanceStatus.issued)
    return sum(1 for instance in issued if as_utc(instance.campaign.end_date) >= now)
