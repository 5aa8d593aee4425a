"""ORM-level validators shared by the cafe models.

They run on attribute assignment, so a bad price or a malformed line
snapshot is rejected no matter which service writes it.
"""

from decimal import Decimal

ORDER_LINE_KEYS = ("menu_item_id", "name", "price", "quantity", "line_total")


def _as_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def non_negative(key: str, value):
    """Reject amounts below zero."""
    if value is not None and _as_decimal(value) < 0:
        raise ValueError(f"{key} cannot be negative, got {value}")
    return value


def positive(key: str, value):
    """Reject zero and negative numbers."""
    if value is not None and _as_decimal(value) <= 0:
        raise ValueError(f"{key} must be positive, got {value}")
    return value


def order_lines(key: str, value):
    """Check the JSON line snapshots stored on an order."""
    if not isinstance(value, list):
        raise ValueError(f"{key} must be a list, got {type(value).__name__}")
    for i, line in enumerate(value):
        if not isinstance(line, dict):
            raise ValueError(f"{key}[{i}] must be a dict, got {type(line).__name__}")
        missing = [k for k in ORDER_LINE_KEYS if k not in line]
        if missing:
            raise ValueError(f"{key}[{i}] is missing {', '.join(missing)}")
    return value
