"""
Line-oriented text encoding of record trees.

Format
- `# comment` and blank lines are kept verbatim as layout records.
- `name=value` (implicit String) and `name[Type]=value` are single-line records.
- `name[Type:N]` is followed by exactly N raw lines: the payload of a
  multi-line scalar, or the nested encoding of a composite's children.
- `name[Type]` with a composite tag and no payload is an empty composite.
- Older flat files spell composite children as `parent.Key`, `parent.Value` or
  `parent.<index>` lines under a `parent[Type]` header without a line count;
  those attach to the most recent such composite at the same level.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set

from common.errors import ParseError
from common.names import is_valid_name, same_name

from .models import DEFAULT_TYPE, Record, RecordKind, is_composite_tag, is_map_tag


logger = logging.getLogger(__name__)

_LINE = re.compile(
    r"^(?P<name>[^\[\]=]*?)\s*"
    r"(?:\[(?P<type>[^\[\]:=]+(?:\[\])*)(?::(?P<count>[^\]]*))?\])?"
    r"(?P<assign>=(?P<value>.*))?$"
)


@dataclass
class _Line:
    name: str
    tag: str
    count: Optional[int]
    value: Optional[str]

    @property
    def composite(self) -> bool:
        return is_composite_tag(self.tag)


# -------- Join --------
def join_lines(records: Iterable[Record]) -> List[str]:
    """Encode records as physical lines (no terminators)."""
    out: List[str] = []
    for r in records:
        kind = r.kind
        if kind is RecordKind.LAYOUT:
            out.append(r.text)
        elif kind is RecordKind.COMPOSITE:
            body = join_lines(r.children)
            out.append(f"{r.name}[{r.data_type}:{len(body)}]" if body else f"{r.name}[{r.data_type}]")
            out.extend(body)
        else:
            text = r.text
            if "\n" in text or "\r" in text:
                parts = text.split("\n")
                out.append(f"{r.name}[{r.data_type}:{len(parts)}]")
                out.extend(parts)
            elif r.data_type == DEFAULT_TYPE:
                out.append(f"{r.name}={text}")
            else:
                out.append(f"{r.name}[{r.data_type}]={text}")
    return out


def join(records: Iterable[Record]) -> str:
    """Encode records as file text; every line, including the last, ends in `\\n`."""
    return "".join(f"{line}\n" for line in join_lines(records))


# -------- Split --------
def _parse_line(line: str, line_no: int) -> _Line:
    m = _LINE.match(line)
    if not m:
        raise ParseError(line_no, f"unrecognized line {line!r}")
    name = m.group("name").strip()
    if not is_valid_name(name):
        raise ParseError(line_no, f"invalid record name {name!r}")
    tag = (m.group("type") or DEFAULT_TYPE).strip()
    value = m.group("value") if m.group("assign") else None

    count: Optional[int] = None
    raw_count = m.group("count")
    if raw_count is not None:
        try:
            count = int(raw_count.strip())
        except ValueError:
            raise ParseError(line_no, f"unparsable line count {raw_count!r} for '{name}'") from None
        if count <= 0:
            raise ParseError(line_no, f"non-positive line count {count} for '{name}'")
        if value is not None:
            raise ParseError(line_no, f"line count and '=' value both given for '{name}'")
    elif value is None and not is_composite_tag(tag):
        raise ParseError(line_no, f"'{name}[{tag}]' has neither a value nor a line count")
    elif value is not None and is_composite_tag(tag) and value.strip():
        raise ParseError(line_no, f"inline value for composite '{name}[{tag}]'")
    return _Line(name=name, tag=tag, count=count, value=value)


def _legacy_child_name(parent: Record, child: str) -> bool:
    if is_map_tag(parent.data_type):
        return same_name(child, "Key") or same_name(child, "Value")
    return child.isdigit()


def _dotted_parent(records: List[Record], flat: Set[int], name: str) -> Optional[Record]:
    """Composite that a flat `parent.child` line belongs to, if any.

    Only parents declared without a line count qualify, and the child part
    must be `Key`/`Value` (maps) or an index (arrays); anything else is a
    plain record whose name happens to contain a dot.
    """
    if "." not in name:
        return None
    prefix, child = name.split(".", 1)
    for r in reversed(records):
        if r.kind is RecordKind.COMPOSITE and same_name(r.name, prefix):
            if id(r) in flat and _legacy_child_name(r, child):
                return r
            return None
    return None


def _split_lines(lines: List[str], first_line_no: int) -> List[Record]:
    records: List[Record] = []
    payloads: Dict[int, List[str]] = {}
    starts: Dict[int, int] = {}
    flat: Set[int] = set()
    i = 0
    while i < len(lines):
        line_no = first_line_no + i
        raw = lines[i]
        line = raw[:-1] if raw.endswith("\r") else raw
        i += 1

        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            records.append(Record.layout(line))
            continue

        try:
            parsed = _parse_line(line, line_no)
        except ParseError as ex:
            logger.warning("Dropping malformed line: %s", ex)
            continue

        payload: List[str] = []
        if parsed.count is not None:
            payload = lines[i : i + parsed.count]
            if len(payload) < parsed.count:
                logger.warning(
                    "line %d: '%s' declares %d lines but only %d remain",
                    line_no, parsed.name, parsed.count, len(payload),
                )
            i += len(payload)

        parent = _dotted_parent(records, flat, parsed.name)
        if parent is not None:
            child_header = line.lstrip()[len(parsed.name.split(".", 1)[0]) + 1 :]
            payloads[id(parent)].append(child_header)
            payloads[id(parent)].extend(payload)
            continue

        if parsed.composite:
            record = Record(name=parsed.name, data_type=parsed.tag, value=[])
            payloads[id(record)] = list(payload)
            starts[id(record)] = line_no + 1
            if parsed.count is None:
                flat.add(id(record))
        elif parsed.count is not None:
            record = Record(name=parsed.name, data_type=parsed.tag, value="\n".join(payload))
        else:
            record = Record(name=parsed.name, data_type=parsed.tag, value=parsed.value or "")
        records.append(record)

    # Composite pass: nested payloads become child records
    for record in records:
        body = payloads.get(id(record))
        if body is None:
            continue
        record.value = _split_lines(body, starts[id(record)]) if any(b.strip() for b in body) else []
    return records


def split(text: str) -> List[Record]:
    """Parse file text into records. Malformed lines are logged and dropped."""
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return _split_lines(lines, 1)
