from __future__ import annotations

from enum import Enum
from typing import Iterable, Iterator, List, Optional, Union

from pydantic import BaseModel, Field, SecretStr

from common.names import same_name


DEFAULT_TYPE = "String"
LAYOUT_TYPE = "Cfg.File.Format"
MAP_TYPE = "HashTable"
CREDENTIAL_TYPE = "PSCredential"
OBJECT_TYPE = "Object"
ARRAY_SUFFIX = "[]"


class Scheme(str, Enum):
    """Envelope encryption schemes, stored verbatim as the record's type tag."""

    DPAPI = "DPAPI"
    AES256 = "AES256"

    @classmethod
    def parse(cls, raw: Union[str, "Scheme"]) -> "Scheme":
        if isinstance(raw, Scheme):
            return raw
        for member in cls:
            if member.value.lower() == str(raw).strip().lower():
                return member
        raise ValueError(f"Unknown encryption scheme: {raw!r}")


class RecordKind(str, Enum):
    SCALAR = "scalar"
    COMPOSITE = "composite"
    ENVELOPE = "envelope"
    LAYOUT = "layout"


def is_array_tag(tag: str) -> bool:
    return tag.endswith(ARRAY_SUFFIX)


def array_tag(element: str) -> str:
    return f"{element}{ARRAY_SUFFIX}"


def element_tag(tag: str) -> str:
    return tag[: -len(ARRAY_SUFFIX)] if is_array_tag(tag) else tag


def is_map_tag(tag: str) -> bool:
    return tag.lower() == MAP_TYPE.lower()


def is_composite_tag(tag: str) -> bool:
    return is_map_tag(tag) or is_array_tag(tag)


def is_envelope_tag(tag: str) -> bool:
    return tag.upper() in (Scheme.DPAPI.value, Scheme.AES256.value)


def is_layout_tag(tag: str) -> bool:
    return tag == LAYOUT_TYPE


class Record(BaseModel):
    """
    One named, typed node of a config file.

    Fields
    - name: record name as written in the file (case preserved).
    - data_type: type tag; `String` when the file carries none.
    - value: scalar text, or the ordered child records of a composite.

    Layout records (`Cfg.File.Format`) hold a comment or blank line verbatim in
    `value` and have no name; they never take part in lookups or counts.
    Envelope records (`DPAPI`/`AES256`) hold Base64 ciphertext whose plaintext
    is itself a serialized record.
    """

    name: str = ""
    data_type: str = DEFAULT_TYPE
    value: Union[str, List["Record"]] = Field(default="")

    @classmethod
    def layout(cls, text: str) -> "Record":
        return cls(name="", data_type=LAYOUT_TYPE, value=text)

    @property
    def kind(self) -> RecordKind:
        if is_layout_tag(self.data_type):
            return RecordKind.LAYOUT
        if is_envelope_tag(self.data_type):
            return RecordKind.ENVELOPE
        if isinstance(self.value, list) or is_composite_tag(self.data_type):
            return RecordKind.COMPOSITE
        return RecordKind.SCALAR

    @property
    def children(self) -> List["Record"]:
        return self.value if isinstance(self.value, list) else []

    @property
    def text(self) -> str:
        return self.value if isinstance(self.value, str) else ""

    def matches(self, name: str) -> bool:
        return self.kind is not RecordKind.LAYOUT and same_name(self.name, name)


Record.model_rebuild()


class Credential(BaseModel):
    """Username/secret pair stored as two user-bound envelope blobs."""

    username: str
    password: SecretStr

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Credential):
            return NotImplemented
        return (
            self.username == other.username
            and self.password.get_secret_value() == other.password.get_secret_value()
        )


def visible(records: Iterable[Record]) -> Iterator[Record]:
    """Yield records that are not layout (comment/blank line) records."""
    return (r for r in records if r.kind is not RecordKind.LAYOUT)


def find_first(records: Iterable[Record], name: str) -> Optional[Record]:
    for r in records:
        if r.matches(name):
            return r
    return None
