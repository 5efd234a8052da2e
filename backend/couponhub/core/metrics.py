from collections import Counter
from threading import Lock
from typing import Dict, Counter as CounterType

_metrics: CounterType[str] = Counter()
_lock = Lock()


def _inc(key: str) -> None:
    with _lock:
        _metrics[key] += 1


def record_coupon_issued() -> None:
    _inc("coupons_issued")


def record_issuance_rejected() -> None:
    _inc("issuance_rejected")


def record_coupon_redeemed() -> None:
    _inc("coupons_redeemed")


def record_redemption_rejected() -> None:
    _inc("redemptions_rejected")


def record_redemption_cancelled() -> None:
    _inc("redemptions_cancelled")


def snapshot() -> Dict[str, int]:
    with _lock:
        return dict(_metrics)


def reset() -> None:
    with _lock:
        _metrics.clear()
