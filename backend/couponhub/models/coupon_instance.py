from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, composite, mapped_column, relationship

from couponhub.db.base import Base
from couponhub.models.audit import AuditStamp, as_utc
from couponhub.models.campaign import Campaign


class CouponInstanceStatus(str, enum.Enum):
    issued = "issued"
    used = "used"
    expired = "expired"
    canceled = "canceled"


class RedeemResult(str, enum.Enum):
    success = "success"
    already_finalized = "already_finalized"
    campaign_window_closed = "campaign_window_closed"


class CancelResult(str, enum.Enum):
    success = "success"
    not_currently_used = "not_currently_used"


class CouponInstance(Base):
    __tablename__ = "coupon_instances"
    __table_args__ = (
        CheckConstraint(
            "(status = 'used' AND used_at IS NOT NULL) OR (status != 'used' AND used_at IS NULL)",
            name="ck_coupon_instances_used_at_matches_status",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    campaign_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("campaigns.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    holder_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[CouponInstanceStatus] = mapped_column(
        Enum(CouponInstanceStatus, native_enum=False),
        nullable=False,
        default=CouponInstanceStatus.issued,
    )
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    audit: Mapped[AuditStamp] = composite(
        mapped_column("created_at", DateTime(timezone=True), key="audit_created_at", nullable=False),
        mapped_column("updated_at", DateTime(timezone=True), key="audit_updated_at", nullable=False),
    )

    campaign: Mapped[Campaign] = relationship("Campaign", lazy="joined")

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("status", CouponInstanceStatus.issued)
        super().__init__(**kwargs)

    @property
    def created_at(self) -> datetime | None:
        return as_utc(self.audit.created_at) if self.audit else None

    @property
    def updated_at(self) -> datetime | None:
        return as_utc(self.audit.updated_at) if self.audit else None

    def redeem(self, now: datetime) -> RedeemResult:
        if self.status != CouponInstanceStatus.issued:
            return RedeemResult.already_finalized
        if now > as_utc(self.campaign.end_date):
            self.status = CouponInstanceStatus.expired
            return RedeemResult.campaign_window_closed
        self.status = CouponInstanceStatus.used
        self.used_at = now
        return RedeemResult.success

    def cancel_redemption(self, now: datetime) -> CancelResult:
        # Reversal has no time bound.
        if self.status != CouponInstanceStatus.used:
            return CancelResult.not_currently_used
        self.status = CouponInstanceStatus.issued
        self.used_at = None
        return CancelResult.success
