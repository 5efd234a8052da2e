from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from couponhub.db.session import get_session
from couponhub.models.campaign import Campaign
from couponhub.schemas.campaigns import (
    CampaignCreate,
    CampaignDeletionRead,
    CampaignPage,
    CampaignRead,
    CampaignUpdate,
    CouponInstanceRead,
    CouponIssueRequest,
    discount_payload,
)
from couponhub.services import campaigns as campaigns_service


router = APIRouter(prefix="/campaigns", tags=["campaigns"])


def to_campaign_read(campaign: Campaign, *, now: datetime | None = None) -> CampaignRead:
    now = now or datetime.now(timezone.utc)
    return CampaignRead(
        id=campaign.id,
        code=campaign.code,
        name=campaign.name,
        description=campaign.description,
        discount=discount_payload(campaign.discount),
        minimum_purchase_amount=campaign.minimum_purchase_amount,
        start_date=campaign.start_date,
        end_date=campaign.end_date,
        max_issuance=campaign.max_issuance,
        issued_count=campaign.issued_count,
        status=campaign.status,
        created_at=campaign.created_at,
        updated_at=campaign.updated_at,
        is_available=campaign.is_eligible_for_issuance(now),
    )


@router.post("", response_model=CampaignRead, status_code=status.HTTP_201_CREATED)
async def create_campaign(payload: CampaignCreate, session: AsyncSession = Depends(get_session)) -> CampaignRead:
    campaign = await campaigns_service.create_campaign(session, payload)
    return to_campaign_read(campaign)


@router.get("", response_model=CampaignPage)
async def list_campaigns(
    page: int = Query(default=0, ge=0),
    size: int | None = Query(default=None, ge=1),
    session: AsyncSession = Depends(get_session),
) -> CampaignPage:
    items, total = await campaigns_service.list_campaigns(session, page=page, size=size)
    now = datetime.now(timezone.utc)
    return CampaignPage(
        items=[to_campaign_read(campaign, now=now) for campaign in items],
        total=total,
        page=page,
        size=campaigns_service.resolve_page_size(size),
    )


@router.get("/available", response_model=list[CampaignRead])
async def list_available_campaigns(session: AsyncSession = Depends(get_session)) -> list[CampaignRead]:
    now = datetime.now(timezone.utc)
    campaigns = await campaigns_service.list_available_campaigns(session, now=now)
    return [to_campaign_read(campaign, now=now) for campaign in campaigns]


@router.get("/{campaign_id}", response_model=CampaignRead)
async def get_campaign(campaign_id: int, session: AsyncSession = Depends(get_session)) -> CampaignRead:
    return to_campaign_read(await campaigns_service.get_campaign(session, campaign_id))


@router.put("/{campaign_id}", response_model=CampaignRead)
async def update_campaign(
    campaign_id: int, payload: CampaignUpdate, session: AsyncSession = Depends(get_session)
) -> CampaignRead:
    return to_campaign_read(await campaigns_service.update_campaign(session, campaign_id, payload))


@router.put("/{campaign_id}/activate", response_model=CampaignRead)
async def activate_campaign(campaign_id: int, session: AsyncSession = Depends(get_session)) -> CampaignRead:
    return to_campaign_read(await campaigns_service.activate_campaign(session, campaign_id))


@router.put("/{campaign_id}/deactivate", response_model=CampaignRead)
async def deactivate_campaign(campaign_id: int, session: AsyncSession = Depends(get_session)) -> CampaignRead:
    return to_campaign_read(await campaigns_service.deactivate_campaign(session, campaign_id))


@router.delete("/{campaign_id}", response_model=CampaignDeletionRead)
async def delete_campaign(campaign_id: int, session: AsyncSession = Depends(get_session)) -> CampaignDeletionRead:
    action = await campaigns_service.delete_campaign(session, campaign_id)
    return CampaignDeletionRead(campaign_id=campaign_id, action=action)


@router.post("/{campaign_id}/issue", response_model=CouponInstanceRead, status_code=status.HTTP_201_CREATED)
async def issue_coupon(
    campaign_id: int, payload: CouponIssueRequest, session: AsyncSession = Depends(get_session)
) -> CouponInstanceRead:
    instance = await campaigns_service.issue_coupon(session, campaign_id=campaign_id, holder_id=payload.holder_id)
    return CouponInstanceRead.model_validate(instance, from_attributes=True)
