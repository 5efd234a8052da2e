from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from couponhub.models.campaign import (
    CampaignStatus,
    DeletionAction,
    Discount,
    FixedAmount,
    FreeDelivery,
    Percentage,
)
from couponhub.models.coupon_instance import CancelResult, CouponInstanceStatus, RedeemResult


class FixedAmountDiscount(BaseModel):
    type: Literal["fixed_amount"] = "fixed_amount"
    amount: Decimal | None = None

    def to_discount(self) -> Discount:
        return FixedAmount(amount=self.amount)


class PercentageDiscount(BaseModel):
    type: Literal["percentage"] = "percentage"
    rate: Decimal | None = None

    def to_discount(self) -> Discount:
        return Percentage(rate=self.rate)


class FreeDeliveryDiscount(BaseModel):
    type: Literal["free_delivery"] = "free_delivery"

    def to_discount(self) -> Discount:
        return FreeDelivery()


DiscountPayload = Annotated[
    Union[FixedAmountDiscount, PercentageDiscount, FreeDeliveryDiscount],
    Field(discriminator="type"),
]


def discount_payload(discount: Discount) -> FixedAmountDiscount | PercentageDiscount | FreeDeliveryDiscount:
    if isinstance(discount, FixedAmount):
        return FixedAmountDiscount(amount=discount.amount)
    if isinstance(discount, Percentage):
        return PercentageDiscount(rate=discount.rate)
    return FreeDeliveryDiscount()


class CampaignCreate(BaseModel):
    code: str = Field(min_length=1, max_length=40)
    name: str = Field(max_length=100)
    description: str | None = Field(default=None, max_length=500)
    discount: DiscountPayload
    minimum_purchase_amount: Decimal | None = Field(default=None, ge=0)
    start_date: datetime
    end_date: datetime
    max_issuance: int | None = Field(default=None, ge=0)


class CampaignUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    minimum_purchase_amount: Decimal | None = Field(default=None, ge=0)
    status: CampaignStatus | None = None


class CampaignRead(BaseModel):
    id: int
    code: str
    name: str
    description: str | None = None
    discount: DiscountPayload
    minimum_purchase_amount: Decimal | None = None
    start_date: datetime
    end_date: datetime
    max_issuance: int | None = None
    issued_count: int
    status: CampaignStatus
    created_at: datetime | None = None
    updated_at: datetime | None = None
    is_available: bool


class CampaignPage(BaseModel):
    items: list[CampaignRead]
    total: int
    page: int
    size: int


class CampaignDeletionRead(BaseModel):
    campaign_id: int
    action: DeletionAction


class CouponIssueRequest(BaseModel):
    holder_id: str = Field(min_length=1, max_length=64)


class CouponInstanceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    campaign_id: int
    holder_id: str
    status: CouponInstanceStatus
    issued_at: datetime
    used_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RedemptionRead(BaseModel):
    result: RedeemResult
    coupon: CouponInstanceRead


class CancellationRead(BaseModel):
    result: CancelResult
    coupon: CouponInstanceRead


class HolderCouponCount(BaseModel):
    holder_id: str
    available: int
