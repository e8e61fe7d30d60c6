from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Tuple
from uuid import UUID

from common.errors import DecodeError, TypeResolutionError

from .models import DEFAULT_TYPE, Record


logger = logging.getLogger(__name__)

# Text written for a null value; reads back as None for non-string tags.
BLANK = ""

_INT_RANGES: Dict[str, Tuple[int, int]] = {
    "Byte": (0, 2**8 - 1),
    "SByte": (-(2**7), 2**7 - 1),
    "Int16": (-(2**15), 2**15 - 1),
    "UInt16": (0, 2**16 - 1),
    "Int32": (-(2**31), 2**31 - 1),
    "UInt32": (0, 2**32 - 1),
    "Int64": (-(2**63), 2**63 - 1),
    "UInt64": (0, 2**64 - 1),
}


@dataclass(frozen=True)
class _ScalarCodec:
    tag: str
    render: Callable[[Any], str]
    parse: Callable[[str], Any]


def _int_codec(tag: str) -> _ScalarCodec:
    lo, hi = _INT_RANGES[tag]

    def _check(n: int) -> int:
        if not lo <= n <= hi:
            raise ValueError(f"{n} out of range for {tag}")
        return n

    def render(v: Any) -> str:
        if isinstance(v, float) and not v.is_integer():
            raise ValueError(f"{v!r} is not integral")
        return str(_check(int(v)))

    return _ScalarCodec(tag, render, lambda s: _check(int(s.strip())))


def _render_char(v: Any) -> str:
    s = str(v)
    if len(s) != 1:
        raise ValueError("Char needs exactly one character")
    return s


def _parse_char(s: str) -> str:
    if len(s) != 1:
        raise ValueError("Char needs exactly one character")
    return s


def _render_datetime(v: Any) -> str:
    if not isinstance(v, datetime):
        raise TypeError("DateTime needs a datetime")
    # Fixed microsecond precision, offset only for aware values
    return v.isoformat(sep=" ", timespec="microseconds")


def _render_xml_document(v: Any) -> str:
    if isinstance(v, str):
        ET.fromstring(v)
        return v
    if isinstance(v, ET.ElementTree):
        return ET.tostring(v.getroot(), encoding="unicode")
    return ET.tostring(v, encoding="unicode")


def _render_xml_element(v: Any) -> str:
    if isinstance(v, str):
        ET.fromstring(v)
        return v
    return ET.tostring(v, encoding="unicode")


def _float_text(v: Any) -> str:
    return repr(float(v))


_CODECS: Dict[str, _ScalarCodec] = {
    c.tag: c
    for c in [
        _ScalarCodec("String", str, lambda s: s),
        _ScalarCodec("Char", _render_char, _parse_char),
        _ScalarCodec("Boolean", lambda v: "True" if v else "False", lambda s: s.strip().lower() != "false"),
        *(_int_codec(t) for t in _INT_RANGES),
        _ScalarCodec("Single", _float_text, lambda s: float(s.strip())),
        _ScalarCodec("Double", _float_text, lambda s: float(s.strip())),
        _ScalarCodec("Decimal", lambda v: str(Decimal(v)), lambda s: Decimal(s.strip())),
        _ScalarCodec("DateTime", _render_datetime, lambda s: datetime.fromisoformat(s.strip())),
        _ScalarCodec("Guid", lambda v: str(UUID(str(v))), lambda s: UUID(s.strip())),
        _ScalarCodec("XmlDocument", _render_xml_document, lambda s: ET.ElementTree(ET.fromstring(s))),
        _ScalarCodec("XmlElement", _render_xml_element, ET.fromstring),
    ]
}

# Lower-cased type names accepted in files and hints -> canonical tag
_ALIASES: Dict[str, str] = {}
for _tag in _CODECS:
    _ALIASES[_tag.lower()] = _tag
    _ALIASES[f"system.{_tag.lower()}"] = _tag
_ALIASES.update(
    {
        "str": "String",
        "bool": "Boolean",
        "int": "Int32",
        "integer": "Int32",
        "long": "Int64",
        "short": "Int16",
        "float": "Double",
        "single": "Single",
        "uuid": "Guid",
        "xml": "XmlDocument",
        "system.xml.xmldocument": "XmlDocument",
        "system.xml.xmlelement": "XmlElement",
    }
)


def resolve_tag(tag: Optional[str]) -> str:
    """Map a scalar type name (canonical, `System.*` or alias) to its canonical tag.

    An empty tag means the default `String`. Raises `TypeResolutionError` for
    anything that is not a known scalar type.
    """
    if tag is None or not tag.strip():
        return DEFAULT_TYPE
    canonical = _ALIASES.get(tag.strip().lower())
    if canonical is None:
        raise TypeResolutionError(tag)
    return canonical


def is_scalar_tag(tag: str) -> bool:
    try:
        resolve_tag(tag)
    except TypeResolutionError:
        return False
    return True


def infer_tag(value: Any) -> str:
    """Pick a scalar tag from the runtime type of `value`."""
    if isinstance(value, bool):
        return "Boolean"
    if isinstance(value, int):
        lo, hi = _INT_RANGES["Int32"]
        return "Int32" if lo <= value <= hi else "Int64"
    if isinstance(value, float):
        return "Double"
    if isinstance(value, Decimal):
        return "Decimal"
    if isinstance(value, datetime):
        return "DateTime"
    if isinstance(value, UUID):
        return "Guid"
    if isinstance(value, ET.ElementTree):
        return "XmlDocument"
    if ET.iselement(value):
        return "XmlElement"
    if isinstance(value, str):
        return DEFAULT_TYPE
    raise TypeResolutionError(type(value).__name__, "no scalar type for Python type")


def to_text(value: Any, type_hint: Optional[str] = None) -> Tuple[str, str]:
    """Render a scalar as `(text, tag)`.

    - `type_hint` overrides inference from the runtime type.
    - `None` renders as the blank marker with the default tag and a warning.
    - A value that cannot be rendered under the resolved tag raises
      `TypeResolutionError`.
    """
    if value is None:
        logger.warning("Null value rendered as blank %s", DEFAULT_TYPE)
        return (BLANK, DEFAULT_TYPE)
    tag = resolve_tag(type_hint) if type_hint else infer_tag(value)
    try:
        return (_CODECS[tag].render(value), tag)
    except (TypeError, ValueError, ArithmeticError, SyntaxError) as ex:
        raise TypeResolutionError(tag, f"cannot render {type(value).__name__} ({ex}) as") from ex


def from_text(record: Record) -> Any:
    """Rebuild the scalar stored in `record`.

    Raises `TypeResolutionError` for unknown tags and `DecodeError` when the
    text does not parse under its tag. Blank text under a non-string tag
    reads back as None.
    """
    tag = resolve_tag(record.data_type)
    text = record.text
    if text == BLANK and tag != DEFAULT_TYPE:
        return None
    try:
        return _CODECS[tag].parse(text)
    except (TypeError, ValueError, ArithmeticError, SyntaxError) as ex:
        raise DecodeError(f"Record '{record.name}': cannot read {text!r} as {tag}: {ex}") from ex
