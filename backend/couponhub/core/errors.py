"""Caller-facing error taxonomy for the coupon lifecycle.

Every error carries a stable ``code`` and the HTTP status the API layer
should answer with; the application renders them as ``ErrorResponse``.
"""

from __future__ import annotations

from typing import Any

from fastapi import status


class CouponError(Exception):
    code = "coupon_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: Any) -> None:
        super().__init__(detail if isinstance(detail, str) else repr(detail))
        self.detail = detail


class CampaignNotFoundError(CouponError):
    code = "campaign_not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, campaign_id: int) -> None:
        super().__init__(f"Campaign not found: {campaign_id}")
        self.campaign_id = campaign_id


class CouponInstanceNotFoundError(CouponError):
    code = "coupon_not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, instance_id: int) -> None:
        super().__init__(f"Coupon not found: {instance_id}")
        self.instance_id = instance_id


class CampaignValidationError(CouponError):
    code = "validation_failed"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, errors: list[str]) -> None:
        super().__init__(list(errors))
        self.errors = list(errors)


class DuplicateCampaignCodeError(CouponError):
    code = "duplicate_code"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, code: str) -> None:
        super().__init__(f"Campaign code already in use: {code}")
        self.campaign_code = code


class CampaignNotEligibleError(CouponError):
    code = "not_eligible"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, campaign_id: int) -> None:
        super().__init__(f"Campaign is not eligible for issuance: {campaign_id}")
        self.campaign_id = campaign_id


class IllegalCampaignStateError(CouponError):
    """Invariant violation inside the lifecycle; points at a coordination bug."""

    code = "illegal_state"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
