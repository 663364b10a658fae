# utils/decimals.py

import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from typing import Any, Optional

from domain.errors import ValidationError

TWOPLACES = Decimal("0.01")


def round_money(amount: Decimal) -> Decimal:
    """
    Round to paise using banker's rounding, the rule the shop's GST figures
    have always been computed with.
    """
    return Decimal(amount).quantize(TWOPLACES, rounding=ROUND_HALF_EVEN)


def parse_decimal(
        value: Any,
        field: str,
        default: Optional[Decimal] = None,
        allow_negative: bool = False,
) -> Decimal:
    """
    Parse a form value into a Decimal.

    Blank values return `default`, or fail when no default is given.
    Floats are rejected.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{field} must be a decimal string, not {type(value).__name__}", field)
    elif isinstance(value, int):
        result = Decimal(value)
    elif value is None or str(value).strip() == "":
        if default is None:
            raise ValidationError(f"{field} is required", field)
        return default
    else:
        try:
            result = Decimal(str(value).strip().replace(",", ""))
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number, got {value!r}", field)

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", field)
    if result < 0 and not allow_negative:
        raise ValidationError(f"{field} cannot be negative", field)
    return result


def cell_to_decimal(value: Any) -> Decimal:
    """
    Read a numeric sheet cell back into a Decimal. Blank or non-numeric cells read as 0.
    """
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, float) and math.isnan(value):
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")


def decimal_to_cell(value: Decimal) -> Any:
    """
    Sheet cells hold plain numbers, so the stored value is a binary float
    (or an int when integral). Values with up to 15 significant digits read
    back exactly through str(); the decimal scale does not survive, so
    10.000 reads back as 10. The store gives these cells a fixed number
    format so the sheet still shows 10.000.
    """
    if value == value.to_integral_value():
        return int(value)
    return float(value)
