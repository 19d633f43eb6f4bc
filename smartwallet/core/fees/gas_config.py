"""
User gas configuration: priority multipliers and custom gas limits.

Only applied to operations when enabled in manual mode; the automatic
mode leaves bundler and paymaster values untouched.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..execution.models import UserOperation
from ..recovery import InvalidParameterError


class GasPriority(str, Enum):
    SLOW = "slow"
    STANDARD = "standard"
    FAST = "fast"
    AGGRESSIVE = "aggressive"


class GasMode(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


# Percent of the estimated limit
GAS_PRIORITY_PERCENT: Dict[GasPriority, int] = {
    GasPriority.SLOW: 80,
    GasPriority.STANDARD: 100,
    GasPriority.FAST: 120,
    GasPriority.AGGRESSIVE: 150,
}

MIN_GAS_LIMITS: Dict[str, int] = {
    "call_gas_limit": 21_000,
    "verification_gas_limit": 50_000,
    "pre_verification_gas": 21_000,
}

MAX_GAS_LIMITS: Dict[str, int] = {
    "call_gas_limit": 10_000_000,
    "verification_gas_limit": 5_000_000,
    "pre_verification_gas": 1_000_000,
}

DEFAULT_MAX_GAS_LIMIT = 10_000_000

_SCALED_FIELDS = ("call_gas_limit", "verification_gas_limit", "pre_verification_gas")
_FEE_FIELDS = ("max_fee_per_gas", "max_priority_fee_per_gas")


class GasLimits(BaseModel):
    """Custom values replacing estimated ones; unset fields keep the estimate."""
    model_config = ConfigDict(frozen=True)

    call_gas_limit: Optional[int] = Field(default=None, ge=0)
    verification_gas_limit: Optional[int] = Field(default=None, ge=0)
    pre_verification_gas: Optional[int] = Field(default=None, ge=0)
    max_fee_per_gas: Optional[int] = Field(default=None, ge=0)
    max_priority_fee_per_gas: Optional[int] = Field(default=None, ge=0)


def validate_gas_limits(limits: GasLimits, max_gas_limit: int = DEFAULT_MAX_GAS_LIMIT) -> None:
    """
    Check custom limits against the per-field bounds.

    Raises:
        InvalidParameterError: naming the first limit out of range
    """
    for name, minimum in MIN_GAS_LIMITS.items():
        value = getattr(limits, name)
        if value is None:
            continue
        if value < minimum:
            raise InvalidParameterError(name, f"{name} below minimum limit of {minimum}", value)
        if value > MAX_GAS_LIMITS[name]:
            raise InvalidParameterError(name, f"{name} above maximum limit of {MAX_GAS_LIMITS[name]}", value)

    total = sum(getattr(limits, name) or 0 for name in _SCALED_FIELDS)
    if total > max_gas_limit:
        raise InvalidParameterError("max_gas_limit", f"Custom gas limits exceed {max_gas_limit}", total)


class GasConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    mode: GasMode = GasMode.AUTOMATIC
    priority: GasPriority = GasPriority.STANDARD
    custom_limits: GasLimits = Field(default_factory=GasLimits)
    max_gas_limit: int = Field(default=DEFAULT_MAX_GAS_LIMIT, gt=0)

    @property
    def is_active(self) -> bool:
        return self.enabled and self.mode == GasMode.MANUAL

    @property
    def multiplier_percent(self) -> int:
        return GAS_PRIORITY_PERCENT[self.priority]

    def with_custom_limits(self, limits: GasLimits) -> "GasConfig":
        validate_gas_limits(limits, self.max_gas_limit)
        return self.model_copy(update={"custom_limits": limits})

    def apply(self, user_op: UserOperation) -> UserOperation:
        """Apply custom limits or the priority multiplier to `user_op` in place."""
        if not self.is_active:
            return user_op

        percent = self.multiplier_percent
        for name in _SCALED_FIELDS:
            custom = getattr(self.custom_limits, name)
            if custom is not None:
                setattr(user_op, name, custom)
            elif percent != 100:
                setattr(user_op, name, getattr(user_op, name) * percent // 100)

        for name in _FEE_FIELDS:
            custom = getattr(self.custom_limits, name)
            if custom is not None:
                setattr(user_op, name, custom)
        return user_op


DEFAULT_GAS_CONFIG = GasConfig()
