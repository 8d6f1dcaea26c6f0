"""
Lenient coercion helpers for service replies.

The extraction service is untrusted: any field may be missing, mistyped or
invented. These helpers turn raw JSON values into typed values or None, and
never substitute a guessed default for a missing claim.
"""

import re
from enum import Enum
from typing import Any, List, Optional, Type, TypeVar

E = TypeVar('E', bound=Enum)

_NUMBER_RE = re.compile(r'-?\d+(?:\.\d+)?')
_SUFFIX_RE = re.compile(r'[a-z]+')
_RANGE_RE = re.compile(r'\d\s*[a-z%]*\s*(?:-|\u2013|\bto\b)\s*-?\d')
_MULTIPLIERS = {'k': 1e3, 'm': 1e6, 'mm': 1e6, 'million': 1e6, 'b': 1e9, 'bn': 1e9, 'billion': 1e9}
_NULL_STRINGS = {'', 'null', 'none', 'n/a', 'na', 'not stated', 'unknown'}


def as_str(value: Any) -> Optional[str]:
    """Return a stripped string, or None for empty / null-like values."""
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    if text.lower() in _NULL_STRINGS:
        return None
    return text


def as_number(value: Any) -> Optional[float]:
    """
    Parse a number from a reply value.

    Accepts plain numbers and strings such as "$10,000,000", "20%",
    "1.5x" or "12.5M", including trailing punctuation ("$20M."). Ranges
    ("$8M-$10M", "8 to 10 million"), booleans and unparseable strings give
    None.

    Example:
        >>> as_number("$8M")
        8000000.0
        >>> as_number("not stated") is None
        True
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = as_str(value)
    if text is None:
        return None
    cleaned = text.lower().replace(',', '').replace('$', '').replace('£', '').replace('€', '')
    if _RANGE_RE.search(cleaned):
        return None
    match = _NUMBER_RE.search(cleaned)
    if not match:
        return None
    number = float(match.group())
    suffix = _SUFFIX_RE.match(cleaned[match.end():].strip())
    return number * _MULTIPLIERS.get(suffix.group() if suffix else '', 1.0)


def as_int(value: Any) -> Optional[int]:
    number = as_number(value)
    return int(number) if number is not None else None


def as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    text = as_str(value)
    if text is None:
        return None
    if text.lower() in ('true', 'yes', 'y'):
        return True
    if text.lower() in ('false', 'no', 'n'):
        return False
    return None


def as_str_list(value: Any) -> List[str]:
    """Coerce a list (or a single string) into a list of non-empty strings."""
    if value is None:
        return []
    if not isinstance(value, list):
        value = [value]
    items = []
    for item in value:
        text = as_str(item)
        if text is not None:
            items.append(text)
    return items


def as_enum(enum_cls: Type[E], value: Any, default: Optional[E] = None) -> Optional[E]:
    """Map a raw value onto an enum member by value or name, case-insensitively."""
    text = as_str(value)
    if text is None:
        return default
    lowered = text.lower()
    for member in enum_cls:
        if member.value.lower() == lowered or member.name.lower() == lowered:
            return member
    return default


def as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def as_page(value: Any) -> Optional[int]:
    page = as_int(value)
    return page if page is not None and page >= 1 else None


def has_quote(raw: Any) -> bool:
    """True when a reply object carries a non-empty source quote."""
    return isinstance(raw, dict) and as_str(raw.get('source_quote')) is not None
