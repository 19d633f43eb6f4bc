"""
Fee estimation and user gas configuration.
"""

from .estimator import FeeEstimator, FeeQuote, FeeQuoteFeed, QuoteKind, native_to_token_amount
from .gas_config import (
    DEFAULT_GAS_CONFIG,
    GAS_PRIORITY_PERCENT,
    MAX_GAS_LIMITS,
    MIN_GAS_LIMITS,
    GasConfig,
    GasLimits,
    GasMode,
    GasPriority,
    validate_gas_limits,
)

__all__ = [
    "FeeEstimator",
    "FeeQuote",
    "FeeQuoteFeed",
    "QuoteKind",
    "native_to_token_amount",
    "DEFAULT_GAS_CONFIG",
    "GAS_PRIORITY_PERCENT",
    "MAX_GAS_LIMITS",
    "MIN_GAS_LIMITS",
    "GasConfig",
    "GasLimits",
    "GasMode",
    "GasPriority",
    "validate_gas_limits",
]
