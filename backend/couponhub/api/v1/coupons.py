from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from couponhub.db.session import get_session
from couponhub.models.coupon_instance import CouponInstanceStatus
from couponhub.schemas.campaigns import CancellationRead, CouponInstanceRead, HolderCouponCount, RedemptionRead
from couponhub.services import campaigns as campaigns_service


router = APIRouter(tags=["coupons"])


@router.get("/coupons/{instance_id}", response_model=CouponInstanceRead)
async def get_coupon(instance_id: int, session: AsyncSession = Depends(get_session)) -> CouponInstanceRead:
    instance = await campaigns_service.get_coupon(session, instance_id)
    return CouponInstanceRead.model_validate(instance, from_attributes=True)


@router.post("/coupons/{instance_id}/redeem", response_model=RedemptionRead)
async def redeem_coupon(instance_id: int, session: AsyncSession = Depends(get_session)) -> RedemptionRead:
    result, instance = await campaigns_service.redeem_coupon(session, instance_id)
    return RedemptionRead(result=result, coupon=CouponInstanceRead.model_validate(instance, from_attributes=True))


@router.post("/coupons/{instance_id}/cancel", response_model=CancellationRead)
async def cancel_redemption(instance_id: int, session: AsyncSession = Depends(get_session)) -> CancellationRead:
    result, instance = await campaigns_service.cancel_redemption(session, instance_id)
    return CancellationRead(result=result, coupon=CouponInstanceRead.model_validate(instance, from_attributes=True))


@router.get("/holders/{holder_id}/coupons", response_model=list[CouponInstanceRead])
async def list_holder_coupons(
    holder_id: str,
    status: CouponInstanceStatus | None = None,
    session: AsyncSession = Depends(get_session),
) -> list[CouponInstanceRead]:
    instances = await campaigns_service.list_holder_coupons(session, holder_id=holder_id, status=status)
    return [CouponInstanceRead.model_validate(instance, from_attributes=True) for instance in instances]


@router.get("/holders/{holder_id}/coupons/available-count", response_model=HolderCouponCount)
async def count_available_coupons(holder_id: str, session: AsyncSession = Depends(get_session)) -> HolderCouponCount:
    available = await campaigns_service.count_available_coupons(session, holder_id=holder_id)
    return HolderCouponCount(holder_id=holder_id, available=available)
