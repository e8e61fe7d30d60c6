from __future__ import annotations

import re
from typing import Final

from .errors import ValidationError


NAME_REGEX: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]*$")


def is_valid_name(name: str) -> bool:
    return bool(NAME_REGEX.match(name or ""))


def normalize_name(raw: str) -> str:
    """Strip a leading `$` sigil and validate the remaining record name.

    Raises `ValidationError` for anything outside `[A-Za-z0-9_][A-Za-z0-9_.-]*`.
    Case is preserved; comparisons elsewhere are case-insensitive.
    """
    if not isinstance(raw, str):
        raise ValidationError(repr(raw))
    name = raw.strip()
    if name.startswith("$"):
        name = name[1:]
    if not is_valid_name(name):
        raise ValidationError(raw)
    return name


def same_name(a: str, b: str) -> bool:
    return a.casefold() == b.casefold()
