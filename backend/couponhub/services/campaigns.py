from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from couponhub.core import metrics
from couponhub.core.config import settings
from couponhub.core.errors import CampaignValidationError, DuplicateCampaignCodeError
from couponhub.models.audit import as_utc
from couponhub.models.campaign import Campaign, CampaignStatus, DeletionAction, discount_problems
from couponhub.models.coupon_instance import CancelResult, CouponInstance, CouponInstanceStatus, RedeemResult
from couponhub.schemas.campaigns import CampaignCreate, CampaignUpdate
from couponhub.services import campaign_store
from couponhub.services.issuance import coordinator

logger = logging.getLogger(__name__)

# Instances are never deleted and keep a foreign key to their campaign, so any
# of them, whatever its status, keeps the campaign row alive.
DELETION_BLOCKING_STATUSES = frozenset(CouponInstanceStatus)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _validation_errors(payload: CampaignCreate) -> list[str]:
    errors: list[str] = []
    if not normalize_code(payload.code):
        errors.append("Campaign code is required.")
    if not (payload.name or "").strip():
        errors.append("Campaign name is required.")
    if as_utc(payload.start_date) >= as_utc(payload.end_date):
        errors.append("Start date must be before end date.")
    errors.extend(discount_problems(payload.discount.to_discount()))
    return errors


async def create_campaign(session: AsyncSession, payload: CampaignCreate) -> Campaign:
    errors = _validation_errors(payload)
    if errors:
        raise CampaignValidationError(errors)

    code = normalize_code(payload.code)
    if await campaign_store.find_campaign_by_code(session, code):
        raise DuplicateCampaignCodeError(code)

    campaign = Campaign(
        code=code,
        name=payload.name.strip(),
        description=payload.description,
        discount=payload.discount.to_discount(),
        minimum_purchase_amount=payload.minimum_purchase_amount,
        start_date=as_utc(payload.start_date),
        end_date=as_utc(payload.end_date),
        max_issuance=payload.max_issuance,
        status=CampaignStatus.created,
    )
    try:
        await campaign_store.save_campaign(session, campaign)
        await session.commit()
    except IntegrityError as exc:
        # Lost a race with a concurrent create for the same code.
        await session.rollback()
        raise DuplicateCampaignCodeError(code) from exc

    logger.info(
        "campaign_created",
        extra={"campaign_id": campaign.id, "code": code, "discount_type": campaign.discount_type.value},
    )
    return campaign


async def get_campaign(session: AsyncSession, campaign_id: int) -> Campaign:
    return await campaign_store.load_campaign(session, campaign_id)


def resolve_page_size(size: int | None) -> int:
    size = size or settings.campaign_page_size_default
    return max(1, min(int(size), settings.campaign_page_size_max))


async def list_campaigns(session: AsyncSession, *, page: int = 0, size: int | None = None) -> tuple[list[Campaign], int]:
    return await campaign_store.list_campaigns(session, page=max(0, int(page)), size=resolve_page_size(size))


async def list_available_campaigns(session: AsyncSession, *, now: datetime | None = None) -> list[Campaign]:
    return await campaign_store.list_available_campaigns(session, now=now or _now())


async def update_campaign(session: AsyncSession, campaign_id: int, payload: CampaignUpdate) -> Campaign:
    if payload.name is not None and not payload.name.strip():
        raise CampaignValidationError(["Campaign name is required."])

    async with coordinator.locks.hold(campaign_id):
        campaign = await campaign_store.lock_campaign(session, campaign_id)
        previous_status = campaign.status
        if payload.name is not None:
            campaign.name = payload.name.strip()
        if payload.description is not None:
            campaign.description = payload.description
        if payload.minimum_purchase_amount is not None:
            campaign.minimum_purchase_amount = payload.minimum_purchase_amount
        if payload.status is not None:
            campaign.status = payload.status

        await campaign_store.save_campaign(session, campaign)
        await session.commit()
    logger.info("campaign_updated", extra={"campaign_id": campaign.id})
    if campaign.status != previous_status:
        _log_status_change(campaign, previous_status)
    return campaign


def _log_status_change(campaign: Campaign, previous: CampaignStatus) -> None:
    logger.info(
        "campaign_status_changed",
        extra={"campaign_id": campaign.id, "from_status": previous.value, "to_status": campaign.status.value},
    )


async def _change_status(session: AsyncSession, campaign_id: int, *, activate: bool) -> Campaign:
    async with coordinator.locks.hold(campaign_id):
        campaign = await campaign_store.lock_campaign(session, campaign_id)
        previous = campaign.status
        if activate:
            campaign.activate()
        else:
            campaign.deactivate()
        await campaign_store.save_campaign(session, campaign)
        await session.commit()
    if campaign.status != previous:
        _log_status_change(campaign, previous)
    return campaign


async def activate_campaign(session: AsyncSession, campaign_id: int) -> Campaign:
    return await _change_status(session, campaign_id, activate=True)


async def deactivate_campaign(session: AsyncSession, campaign_id: int) -> Campaign:
    return await _change_status(session, campaign_id, activate=False)


async def delete_campaign(session: AsyncSession, campaign_id: int) -> DeletionAction:
    async with coordinator.locks.hold(campaign_id):
        campaign = await campaign_store.lock_campaign(session, campaign_id)
        history = await campaign_store.count_instances_by_campaign(session, campaign_id, DELETION_BLOCKING_STATUSES)
        action = campaign.request_deletion(has_historical_issuance=history > 0)
        if action == DeletionAction.delete:
            await campaign_store.delete_campaign(session, campaign)
        else:
            campaign.deactivate()
            await campaign_store.save_campaign(session, campaign)
        await session.commit()

    if action == DeletionAction.delete:
        logger.info("campaign_deleted", extra={"campaign_id": campaign_id, "code": campaign.code})
    else:
        logger.info(
            "campaign_disabled_instead_of_deleted",
            extra={"campaign_id": campaign_id, "code": campaign.code, "instances": history},
        )
    return action


async def issue_coupon(
    session: AsyncSession, *, campaign_id: int, holder_id: str, now: datetime | None = None
) -> CouponInstance:
    return await coordinator.issue(session, campaign_id=campaign_id, holder_id=holder_id, now=now)


async def get_coupon(session: AsyncSession, instance_id: int) -> CouponInstance:
    return await campaign_store.load_coupon_instance(session, instance_id)


async def redeem_coupon(
    session: AsyncSession, instance_id: int, *, now: datetime | None = None
) -> tuple[RedeemResult, CouponInstance]:
    now = now or _now()
    instance = await campaign_store.lock_coupon_instance(session, instance_id)
    result = instance.redeem(now)
    if result == RedeemResult.already_finalized:
        # Nothing changed; end the transaction to release the row lock.
        await session.commit()
        metrics.record_redemption_rejected()
        logger.info(
            "coupon_redemption_rejected",
            extra={"coupon_id": instance_id, "reason": result.value, "status": instance.status.value},
        )
        return result, instance

    await campaign_store.save_coupon_instance(session, instance)
    await session.commit()
    if result == RedeemResult.success:
        metrics.record_coupon_redeemed()
        logger.info("coupon_redeemed", extra={"coupon_id": instance_id, "campaign_id": instance.campaign_id})
    else:
        metrics.record_redemption_rejected()
        logger.info(
            "coupon_redemption_rejected",
            extra={"coupon_id": instance_id, "reason": result.value, "status": instance.status.value},
        )
    return result, instance


async def cancel_redemption(
    session: AsyncSession, instance_id: int, *, now: datetime | None = None
) -> tuple[CancelResult, CouponInstance]:
    now = now or _now()
    instance = await campaign_store.lock_coupon_instance(session, instance_id)
    result = instance.cancel_redemption(now)
    if result != CancelResult.success:
        await session.commit()
        return result, instance

    await campaign_store.save_coupon_instance(session, instance)
    await session.commit()
    metrics.record_redemption_cancelled()
    logger.info("coupon_redemption_cancelled", extra={"coupon_id": instance_id, "campaign_id": instance.campaign_id})
    return result, instance


async def list_holder_coupons(
    session: AsyncSession, *, holder_id: str, status: CouponInstanceStatus | None = None
) -> list[CouponInstance]:
    return await campaign_store.list_holder_instances(session, holder_id=holder_id, status=status)


async def count_available_coupons(session: AsyncSession, *, holder_id: str, now: datetime | None = None) -> int:
    return await campaign_store.count_available_for_holder(session, holder_id=holder_id, now=now or _now())


async def campaign_usage_summary(session: AsyncSession) -> list[dict[str, Any]]:
    counts: dict[int, dict[str, int]] = {}
    rows = await session.execute(
        select(CouponInstance.campaign_id, CouponInstance.status, func.count())
        .group_by(CouponInstance.campaign_id, CouponInstance.status)
    )
    for campaign_id, status, total in rows.all():
        counts.setdefault(campaign_id, {})[CouponInstanceStatus(status).value] = int(total)

    campaigns = (await session.execute(select(Campaign).order_by(Campaign.id))).scalars().all()
    return [
        {
            "id": campaign.id,
            "code": campaign.code,
            "status": campaign.status.value,
            "issued_count": campaign.issued_count,
            "max_issuance": campaign.max_issuance,
            "instances": counts.get(campaign.id, {}),
        }
        for campaign in campaigns
    ]
