"""
Parcel fee calculation.

Fees are a deterministic formula over weight and urgency:

    total = base + weight × per_kg + base × (multiplier − 1) − discount

floored at zero. The fee table is built from settings once per process.
"""

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, NamedTuple, Optional

from courier.app.core.config import settings


@dataclass(frozen=True)
class FeeSchedule:
    """Immutable fee table."""
    base_fee: float
    weight_fee_per_kg: float
    max_weight_kg: float
    urgency_multipliers: Mapping[str, float] = field(default_factory=dict)

    @classmethod
    def from_settings(cls) -> "FeeSchedule":
        return cls(
            base_fee=settings.base_fee,
            weight_fee_per_kg=settings.weight_fee_per_kg,
            max_weight_kg=settings.max_parcel_weight_kg,
            urgency_multipliers=MappingProxyType(dict(settings.urgency_multipliers)),
        )


DEFAULT_FEE_SCHEDULE = FeeSchedule.from_settings()


@dataclass(frozen=True)
class FeeBreakdown:
    base_fee: float
    weight_fee: float
    urgency_fee: float
    total_fee: float
    discount: Optional[float] = None
    coupon_code: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        """Wire shape; discount and coupon are omitted when absent."""
        data = {
            "baseFee": self.base_fee,
            "weightFee": self.weight_fee,
            "urgencyFee": self.urgency_fee,
            "totalFee": self.total_fee,
        }
        if self.discount is not None:
            data["discount"] = self.discount
        if self.coupon_code is not None:
            data["couponCode"] = self.coupon_code
        return data


class FeeValidation(NamedTuple):
    is_valid: bool
    errors: List[str]


def _urgency_key(urgency: Any) -> str:
    return getattr(urgency, "value", urgency)


def validate_fee_input(
    weight_kg: float,
    urgency: Any,
    schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE
) -> FeeValidation:
    """
    Check fee inputs without raising.

    Every failed rule contributes one message.
    """
    errors = []

    if weight_kg is None or not math.isfinite(weight_kg) or weight_kg <= 0:
        errors.append("Weight must be greater than 0")
    elif weight_kg > schedule.max_weight_kg:
        errors.append(f"Weight cannot exceed {schedule.max_weight_kg:g}kg")

    if _urgency_key(urgency) not in schedule.urgency_multipliers:
        errors.append("Invalid urgency level")

    return FeeValidation(is_valid=not errors, errors=errors)


def compute_fee(
    weight_kg: float,
    urgency: Any,
    discount: float = 0,
    coupon_code: Optional[str] = None,
    schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE
) -> FeeBreakdown:
    """
    Compute the fee breakdown for a parcel.

    Callers validate input first with validate_fee_input(); an unknown
    urgency here raises KeyError.
    """
    multiplier = schedule.urgency_multipliers[_urgency_key(urgency)]
    discount = discount or 0

    base_fee = schedule.base_fee
    weight_fee = weight_kg * schedule.weight_fee_per_kg
    urgency_fee = base_fee * (multiplier - 1)
    total_fee = max(0.0, base_fee + weight_fee + urgency_fee - discount)

    return FeeBreakdown(
        base_fee=round(base_fee, 2),
        weight_fee=round(weight_fee, 2),
        urgency_fee=round(urgency_fee, 2),
        total_fee=round(total_fee, 2),
        discount=round(discount, 2) if discount > 0 else None,
        coupon_code=coupon_code.strip().upper() if coupon_code and coupon_code.strip() else None,
    )
