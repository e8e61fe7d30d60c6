"""
Composite values: arrays, maps and credentials as record sub-trees.

Arrays become children named "0".."n-1" under an `<Element>[]` tag; maps
become consecutive `Key`/`Value` child pairs under `HashTable`; credentials
become two comma-joined user-bound blobs under `PSCredential`. `encode` and
`collapse` are the full value <-> record passes, including envelopes.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Mapping
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import SecretStr

from common.errors import ConfigStoreError, DecodeError, DecryptionError, TypeResolutionError

from . import envelope, primitive
from .models import (
    CREDENTIAL_TYPE,
    DEFAULT_TYPE,
    MAP_TYPE,
    OBJECT_TYPE,
    Credential,
    Record,
    RecordKind,
    Scheme,
    array_tag,
    element_tag,
    is_array_tag,
    is_map_tag,
    visible,
)


logger = logging.getLogger(__name__)

KEY_NAME = "Key"
VALUE_NAME = "Value"
BYTE_ARRAY_TYPE = array_tag("Byte")


# -------- Expand (value -> record) --------
def expand(name: str, value: Any, type_hint: Optional[str] = None) -> Record:
    """Build the record tree for `value` without any envelope."""
    if isinstance(value, Credential):
        return expand_credential(name, value)
    if isinstance(value, Mapping):
        return expand_map(name, value)
    if isinstance(value, (bytes, bytearray)):
        return expand_array(name, list(value), element_hint="Byte")
    if isinstance(value, (list, tuple)):
        hint = element_tag(type_hint) if type_hint and is_array_tag(type_hint) else None
        if hint and not primitive.is_scalar_tag(hint):
            hint = None
        return expand_array(name, value, element_hint=hint)
    text, tag = primitive.to_text(value, type_hint)
    return Record(name=name, data_type=tag, value=text)


def expand_array(name: str, items: Sequence[Any], *, element_hint: Optional[str] = None) -> Record:
    children: List[Record] = []
    for index, item in enumerate(items):
        try:
            child = expand(str(index), item, element_hint)
        except TypeResolutionError as ex:
            # Arrays tolerate opaque elements: keep their text form
            logger.warning("Array '%s'[%d] stored as text: %s", name, index, ex)
            child = Record(name=str(index), data_type=DEFAULT_TYPE, value=str(item))
        children.append(child)

    if element_hint:
        tag = array_tag(primitive.resolve_tag(element_hint))
    else:
        tags = {c.data_type for c in children if c.kind is not RecordKind.SCALAR or c.text != primitive.BLANK}
        tag = array_tag(tags.pop()) if len(tags) == 1 else array_tag(OBJECT_TYPE)
    return Record(name=name, data_type=tag, value=children)


def expand_map(name: str, mapping: Mapping[Any, Any]) -> Record:
    children: List[Record] = []
    for key, item in mapping.items():
        children.append(expand(KEY_NAME, key))
        children.append(expand(VALUE_NAME, item))
    return Record(name=name, data_type=MAP_TYPE, value=children)


def expand_credential(name: str, cred: Credential) -> Record:
    protector = envelope.user_protector()
    blobs = [
        protector.protect(cred.username.encode("utf-8")),
        protector.protect(cred.password.get_secret_value().encode("utf-8")),
    ]
    return Record(name=name, data_type=CREDENTIAL_TYPE, value=",".join(blobs))


def encode(
    name: str,
    value: Any,
    scheme: Optional[Scheme | str] = None,
    password: Optional[str] = None,
    *,
    type_hint: Optional[str] = None,
) -> Record:
    """Encode `value` as a record, sealed in an envelope when `scheme` is given."""
    record = expand(name, value, type_hint)
    if scheme is None:
        return record
    return envelope.seal(record, scheme, password)


# -------- Collapse (record -> value) --------
def collapse_array(record: Record, password: Optional[str] = None) -> Any:
    indexed: List[Tuple[int, Record]] = []
    for child in visible(record.children):
        try:
            indexed.append((int(child.name), child))
        except ValueError:
            logger.warning("Array '%s': skipping child with non-index name '%s'", record.name, child.name)
    indexed.sort(key=lambda pair: pair[0])

    items: List[Any] = []
    for index, child in indexed:
        try:
            items.append(collapse(child, password))
        except ConfigStoreError as ex:
            logger.warning("Array '%s'[%d] could not be read: %s", record.name, index, ex)
            items.append(None)

    if record.data_type.lower() == BYTE_ARRAY_TYPE.lower() and all(isinstance(i, int) for i in items):
        return bytes(items)
    return items


def collapse_map(record: Record, password: Optional[str] = None) -> Dict[Any, Any]:
    out: Dict[Any, Any] = {}
    children = list(visible(record.children))
    i = 0
    while i < len(children):
        key_rec = children[i]
        val_rec = children[i + 1] if i + 1 < len(children) else None
        if not key_rec.matches(KEY_NAME) or val_rec is None or not val_rec.matches(VALUE_NAME):
            logger.warning("Map '%s': dropping unpaired entry '%s'", record.name, key_rec.name)
            i += 1
            continue
        i += 2
        try:
            key = collapse(key_rec, password)
            item = collapse(val_rec, password)
        except ConfigStoreError as ex:
            logger.warning("Map '%s': dropping entry that could not be read: %s", record.name, ex)
            continue
        if not isinstance(key, Hashable):
            logger.warning("Map '%s': dropping entry with unhashable key %r", record.name, key)
            continue
        out[key] = item
    return out


def collapse_credential(record: Record) -> Credential:
    parts = record.text.split(",")
    if len(parts) != 2:
        raise DecodeError(f"Credential '{record.name}' must hold two comma-separated blobs")
    protector = envelope.user_protector()
    try:
        username, secret = (protector.unprotect(p).decode("utf-8") for p in parts)
    except UnicodeDecodeError as ex:
        raise DecryptionError(f"Credential '{record.name}' holds undecodable text") from ex
    return Credential(username=username, password=SecretStr(secret))


def collapse(record: Record, password: Optional[str] = None) -> Any:
    """Rebuild the Python value of `record`, opening envelopes on the way."""
    kind = record.kind
    if kind is RecordKind.LAYOUT:
        raise TypeResolutionError(record.data_type, "layout record has no value")
    if kind is RecordKind.ENVELOPE:
        return collapse(envelope.unseal(record, password), password)
    if is_map_tag(record.data_type):
        return collapse_map(record, password)
    if is_array_tag(record.data_type):
        return collapse_array(record, password)
    if kind is RecordKind.COMPOSITE:
        raise TypeResolutionError(record.data_type, "child records under a non-composite tag")
    if record.data_type.lower() == CREDENTIAL_TYPE.lower():
        return collapse_credential(record)
    return primitive.from_text(record)
