from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import CheckConstraint, DateTime, Enum, Integer, Numeric, String
from sqlalchemy.orm import Mapped, composite, mapped_column

from couponhub.core.errors import IllegalCampaignStateError
from couponhub.db.base import Base
from couponhub.models.audit import AuditStamp, as_utc


class CampaignStatus(str, enum.Enum):
    created = "created"
    active = "active"
    expired = "expired"
    disabled = "disabled"


class DiscountType(str, enum.Enum):
    fixed_amount = "fixed_amount"
    percentage = "percentage"
    free_delivery = "free_delivery"


class DeletionAction(str, enum.Enum):
    delete = "delete"
    disable = "disable"


@dataclass(frozen=True)
class FixedAmount:
    amount: Decimal


@dataclass(frozen=True)
class Percentage:
    rate: Decimal


@dataclass(frozen=True)
class FreeDelivery:
    pass


Discount = FixedAmount | Percentage | FreeDelivery

MAX_PERCENTAGE_RATE = Decimal("100")
# Amounts and rates are stored with two decimal places.
CENT = Decimal("0.01")
MAX_FIXED_AMOUNT = Decimal("9999999999.99")


def _fits_cents(value: Decimal) -> bool:
    return value == value.quantize(CENT)


def discount_problems(discount: Discount) -> list[str]:
    if isinstance(discount, FixedAmount):
        amount = discount.amount
        if amount is None:
            return ["Fixed amount discounts need an amount."]
        if Decimal(amount) <= 0 or Decimal(amount) > MAX_FIXED_AMOUNT or not _fits_cents(Decimal(amount)):
            return ["Fixed amount discounts need an amount greater than 0 with at most 2 decimal places."]
    elif isinstance(discount, Percentage):
        rate = discount.rate
        if rate is None:
            return ["Percentage discounts need a rate."]
        if Decimal(rate) <= 0 or Decimal(rate) > MAX_PERCENTAGE_RATE or not _fits_cents(Decimal(rate)):
            return ["Percentage discounts need a rate greater than 0 and at most 100, with at most 2 decimal places."]
    return []


class Campaign(Base):
    __tablename__ = "campaigns"
    __table_args__ = (
        CheckConstraint("issued_count >= 0", name="ck_campaigns_issued_count_non_negative"),
        CheckConstraint(
            "max_issuance IS NULL OR issued_count <= max_issuance", name="ck_campaigns_issued_count_within_capacity"
        ),
        CheckConstraint("start_date < end_date", name="ck_campaigns_window_order"),
        CheckConstraint(
            "(discount_type = 'fixed_amount' AND discount_amount IS NOT NULL AND discount_rate IS NULL)"
            " OR (discount_type = 'percentage' AND discount_rate IS NOT NULL AND discount_amount IS NULL)"
            " OR (discount_type = 'free_delivery' AND discount_amount IS NULL AND discount_rate IS NULL)",
            name="ck_campaigns_discount_shape",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(40), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    discount_type: Mapped[DiscountType] = mapped_column(Enum(DiscountType, native_enum=False), nullable=False)
    discount_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    discount_rate: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    minimum_purchase_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    max_issuance: Mapped[int | None] = mapped_column(Integer, nullable=True)
    issued_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[CampaignStatus] = mapped_column(
        Enum(CampaignStatus, native_enum=False),
        nullable=False,
        default=CampaignStatus.created,
    )
    audit: Mapped[AuditStamp] = composite(
        mapped_column("created_at", DateTime(timezone=True), key="audit_created_at", nullable=False),
        mapped_column("updated_at", DateTime(timezone=True), key="audit_updated_at", nullable=False),
    )

    def __init__(self, *, discount: Discount | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("issued_count", 0)
        kwargs.setdefault("status", CampaignStatus.created)
        super().__init__(**kwargs)
        if discount is not None:
            self.discount = discount

    @property
    def discount(self) -> Discount:
        if self.discount_type == DiscountType.fixed_amount:
            return FixedAmount(amount=self.discount_amount)
        if self.discount_type == DiscountType.percentage:
            return Percentage(rate=self.discount_rate)
        return FreeDelivery()

    @discount.setter
    def discount(self, value: Discount) -> None:
        self.discount_amount = None
        self.discount_rate = None
        if isinstance(value, FixedAmount):
            self.discount_type = DiscountType.fixed_amount
            self.discount_amount = value.amount
        elif isinstance(value, Percentage):
            self.discount_type = DiscountType.percentage
            self.discount_rate = value.rate
        elif isinstance(value, FreeDelivery):
            self.discount_type = DiscountType.free_delivery
        else:
            raise TypeError(f"Unsupported discount: {value!r}")

    @property
    def created_at(self) -> datetime | None:
        return as_utc(self.audit.created_at) if self.audit else None

    @property
    def updated_at(self) -> datetime | None:
        return as_utc(self.audit.updated_at) if self.audit else None

    def remaining_capacity(self) -> int | None:
        """Units still issuable, or None when the campaign is unlimited."""
        if self.max_issuance is None:
            return None
        return max(0, int(self.max_issuance) - int(self.issued_count or 0))

    def is_eligible_for_issuance(self, now: datetime) -> bool:
        if self.status != CampaignStatus.active:
            return False
        if not (as_utc(self.start_date) < now < as_utc(self.end_date)):
            return False
        remaining = self.remaining_capacity()
        return remaining is None or remaining > 0

    def record_issuance(self, now: datetime) -> None:
        """Count one issued unit, expiring the campaign once capacity is used up.

        Must only be called while the caller holds the campaign's issuance lock.
        """
        if not self.is_eligible_for_issuance(now):
            raise IllegalCampaignStateError(
                f"Campaign {self.id} recorded an issuance while not eligible "
                f"(status={self.status.value}, issued={self.issued_count}, max={self.max_issuance})"
            )
        self.issued_count = int(self.issued_count or 0) + 1
        if self.max_issuance is not None and self.issued_count >= self.max_issuance:
            self.status = CampaignStatus.expired

    def activate(self) -> None:
        self.status = CampaignStatus.active

    def deactivate(self) -> None:
        self.status = CampaignStatus.disabled

    def request_deletion(self, *, has_historical_issuance: bool) -> DeletionAction:
        return DeletionAction.disable if has_historical_issuance else DeletionAction.delete
