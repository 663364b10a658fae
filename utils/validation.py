# utils/validation.py
from typing import Any, Iterable, Optional

from domain.errors import ValidationError


def require_text(val: Any, label: str, field: Optional[str] = None) -> str:
    text = "" if val is None else str(val).strip()
    if not text:
        raise ValidationError(f"{label} is required", field or label)
    return text


def require_choice(val: Any, choices: Iterable[str], label: str, default: Optional[str] = None) -> str:
    """
    Normalise `val` to upper case and check it is one of `choices`.
    Blank values fall back to `default` when one is given.
    """
    text = "" if val is None else str(val).strip().upper()
    if not text and default is not None:
        return default

    choices = tuple(choices)
    if text not in choices:
        raise ValidationError(f"{label} must be one of {', '.join(choices)}, got {val!r}", label)
    return text
