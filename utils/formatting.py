# utils/formatting.py
from decimal import Decimal
from typing import Iterable

DISPLAY_SEPARATOR = ", "


def join_display(values: Iterable[str], distinct: bool = False) -> str:
    """
    Join item labels for the single-row sheet columns.
    With distinct=True repeated labels are listed once, first occurrence wins.
    """
    parts = [v for v in values if v]
    if distinct:
        parts = list(dict.fromkeys(parts))
    return DISPLAY_SEPARATOR.join(parts)


def format_rupees(amount: Decimal) -> str:
    """
    Format an amount Indian-style: lakh/crore grouping and two places.
    Example: Decimal("6231500") -> "62,31,500.00"
    """
    quantized = Decimal(amount).quantize(Decimal("0.01"))
    sign = "-" if quantized < 0 else ""
    whole, paise = f"{abs(quantized):.2f}".split(".")

    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups + [tail])

    return f"{sign}{whole}.{paise}"
