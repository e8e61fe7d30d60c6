from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from codec.models import Record
from codec.primitive import from_text, infer_tag, resolve_tag, to_text
from common.errors import DecodeError, TypeResolutionError


def _roundtrip(value, hint=None):
    text, tag = to_text(value, hint)
    return from_text(Record(name="v", data_type=tag, value=text))


def test_infer_tags_from_runtime_types():
    assert to_text(42) == ("42", "Int32")
    assert to_text(2**40) == (str(2**40), "Int64")
    assert to_text(True) == ("True", "Boolean")
    assert to_text("hello") == ("hello", "String")
    assert infer_tag(1.5) == "Double"
    assert infer_tag(Decimal("1")) == "Decimal"


def test_int_roundtrip_keeps_type():
    value = _roundtrip(42)
    assert value == 42
    assert isinstance(value, int)


def test_explicit_hint_overrides_inference():
    assert to_text(5, "String") == ("5", "String")
    assert to_text("7", "Int64") == ("7", "Int64")
    assert _roundtrip(3, "Double") == 3.0


def test_hint_that_cannot_render_value_raises():
    with pytest.raises(TypeResolutionError):
        to_text("abc", "Int32")
    with pytest.raises(TypeResolutionError):
        to_text(300, "Byte")


def test_none_renders_blank_with_warning(caplog):
    caplog.set_level(logging.WARNING)
    assert to_text(None) == ("", "String")
    assert "Null value" in caplog.text


def test_datetime_fixed_format_and_lossless():
    naive = datetime(2024, 5, 6, 7, 8, 9, 123456)
    text, tag = to_text(naive)
    assert (text, tag) == ("2024-05-06 07:08:09.123456", "DateTime")
    assert _roundtrip(naive) == naive

    aware = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone(timedelta(hours=2)))
    assert to_text(aware)[0] == "2024-05-06 07:08:09.000000+02:00"
    assert _roundtrip(aware) == aware


def test_other_scalars_roundtrip():
    guid = UUID("12345678-1234-5678-1234-567812345678")
    assert _roundtrip(guid) == guid
    assert _roundtrip(Decimal("1.10")) == Decimal("1.10")
    assert _roundtrip(0.1) == 0.1
    assert _roundtrip(False) is False
    assert _roundtrip("x", "Char") == "x"


def test_boolean_parsing_only_false_is_false():
    def read(text):
        return from_text(Record(name="b", data_type="Boolean", value=text))

    assert read("False") is False
    assert read("false") is False
    assert read("True") is True
    assert read("no") is True


def test_xml_roundtrip():
    elem = ET.fromstring("<cfg><item id=\"1\">a</item></cfg>")
    text, tag = to_text(elem)
    assert tag == "XmlElement"
    back = from_text(Record(name="x", data_type=tag, value=text))
    assert ET.tostring(back, encoding="unicode") == text

    doc = ET.ElementTree(ET.fromstring("<root/>"))
    text, tag = to_text(doc)
    assert tag == "XmlDocument"
    assert isinstance(from_text(Record(name="d", data_type=tag, value=text)), ET.ElementTree)


def test_resolve_tag_aliases():
    assert resolve_tag("System.Int32") == "Int32"
    assert resolve_tag("int") == "Int32"
    assert resolve_tag("BOOLEAN") == "Boolean"
    assert resolve_tag("") == "String"


def test_unknown_tag_is_an_error_not_a_string():
    with pytest.raises(TypeResolutionError):
        from_text(Record(name="x", data_type="Widget", value="1"))


def test_bad_text_under_tag_raises_decode_error():
    with pytest.raises(DecodeError):
        from_text(Record(name="x", data_type="Int32", value="abc"))


def test_blank_text_under_typed_tag_reads_as_none():
    assert from_text(Record(name="x", data_type="Int32", value="")) is None
    assert from_text(Record(name="x", data_type="String", value="")) == ""
