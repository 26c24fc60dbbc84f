"""
Validation functions for price/size data at ingestion boundaries.

validate_price() and validate_size() raise ValueError on invalid data
(NaN, Inf, negative, out-of-range). parse_optional_price() and
parse_optional_size() turn raw feed fields (strings, numbers, empty, null)
into validated floats or None.

Call these at every float() conversion from external data. Detectors
never see unvalidated values.
"""

from __future__ import annotations

import math


def validate_price(p: float, context: str = "price") -> float:
    """
    Validate a price value is within [0.0, 1.0] and finite.

    Raises:
        ValueError: If price is NaN, infinite, negative, or > 1.0.
    """
    if math.isnan(p):
        raise ValueError(f"Invalid {context}: NaN")
    if math.isinf(p):
        raise ValueError(f"Invalid {context}: Inf")
    if p < 0.0:
        raise ValueError(f"Invalid {context}: negative value {p}")
    if p > 1.0:
        raise ValueError(f"Invalid {context}: {p} out of range [0.0, 1.0]")
    return p


def validate_size(s: float, context: str = "size") -> float:
    """
    Validate a size/quantity value is non-negative and finite.

    Raises:
        ValueError: If size is NaN, infinite, or negative.
    """
    if math.isnan(s):
        raise ValueError(f"Invalid {context}: NaN")
    if math.isinf(s):
        raise ValueError(f"Invalid {context}: Inf")
    if s < 0.0:
        raise ValueError(f"Invalid {context}: negative value {s}")
    return s


def _to_float(raw: object, context: str) -> float | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return None
    try:
        return float(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid {context}: {raw!r}") from e


def parse_optional_price(raw: object, context: str = "price") -> float | None:
    """Parse a feed price field. Missing/empty -> None, otherwise validated float."""
    value = _to_float(raw, context)
    if value is None:
        return None
    return validate_price(value, context)


def parse_optional_size(raw: object, context: str = "size") -> float | None:
    """Parse a feed size field. Missing/empty -> None, otherwise validated float."""
    value = _to_float(raw, context)
    if value is None:
        return None
    return validate_size(value, context)
