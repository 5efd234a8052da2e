from couponhub.db.base import Base  # noqa: F401
from couponhub.models.audit import AuditStamp  # noqa: F401
from couponhub.models.campaign import (  # noqa: F401
    Campaign,
    CampaignStatus,
    DeletionAction,
    DiscountType,
    FixedAmount,
    FreeDelivery,
    Percentage,
)
from couponhub.models.coupon_instance import CancelResult, CouponInstance, CouponInstanceStatus, RedeemResult  # noqa: F401

__all__ = [
    "Base",
    "AuditStamp",
    "Campaign",
    "CampaignStatus",
    "DeletionAction",
    "DiscountType",
    "FixedAmount",
    "FreeDelivery",
    "Percentage",
    "CancelResult",
    "CouponInstance",
    "CouponInstanceStatus",
    "RedeemResult",
]
