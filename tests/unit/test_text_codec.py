from __future__ import annotations

import logging

from codec.models import LAYOUT_TYPE, Record, RecordKind
from codec.text import join, split


def test_comments_and_blank_lines_survive_byte_for_byte():
    src = "# note\n\nx=1\n   \n# trailing comment\n"
    records = split(src)
    assert [r.data_type for r in records].count(LAYOUT_TYPE) == 4
    assert join(records) == src


def test_single_line_records():
    records = split("count[Int32]=42\nname=value with = and [brackets]\n")
    assert records[0].name == "count"
    assert records[0].data_type == "Int32"
    assert records[0].value == "42"
    assert records[1].data_type == "String"
    assert records[1].value == "value with = and [brackets]"


def test_default_type_tag_is_omitted_on_join():
    records = [Record(name="a", value="1"), Record(name="b", data_type="Int32", value="2")]
    assert join(records) == "a=1\nb[Int32]=2\n"


def test_multiline_payload_keeps_exact_line_breaks():
    value = "first\nsecond\r\nthird\n"
    src = join([Record(name="body", value=value)])
    assert src == "body[String:4]\nfirst\nsecond\r\nthird\n\n"

    back = split(src)
    assert len(back) == 1
    assert back[0].value == value


def test_multiline_payload_lines_are_not_parsed():
    records = split("script[String:2]\n# not a comment\nx=1\ny=2\n")
    assert records[0].value == "# not a comment\nx=1"
    assert records[1].name == "y"
    assert len(records) == 2


def test_nested_composites_roundtrip():
    tree = Record(
        name="servers",
        data_type="Object[]",
        value=[
            Record(name="0", value="alpha"),
            Record(
                name="1",
                data_type="HashTable",
                value=[
                    Record(name="Key", value="port"),
                    Record(name="Value", data_type="Int32", value="8080"),
                ],
            ),
        ],
    )
    src = join([tree])
    assert src == (
        "servers[Object[]:4]\n"
        "0=alpha\n"
        "1[HashTable:2]\n"
        "Key=port\n"
        "Value[Int32]=8080\n"
    )

    back = split(src)
    assert len(back) == 1
    assert back[0].kind is RecordKind.COMPOSITE
    assert [c.name for c in back[0].children] == ["0", "1"]
    assert [c.name for c in back[0].children[1].children] == ["Key", "Value"]
    assert join(back) == src


def test_declared_empty_composite():
    records = split("tags[String[]]\nmap[HashTable]=\n")
    assert records[0].kind is RecordKind.COMPOSITE
    assert records[0].children == []
    assert records[1].children == []
    assert join(records[:1]) == "tags[String[]]\n"


def test_malformed_line_count_is_dropped_and_parsing_resumes(caplog):
    caplog.set_level(logging.WARNING)
    records = split("a[String:x]\nb=2\nc[String:0]\nd=4\n")
    assert [r.name for r in records] == ["b", "d"]
    assert "line count" in caplog.text


def test_short_payload_takes_what_remains(caplog):
    caplog.set_level(logging.WARNING)
    records = split("a[String:3]\nonly\n")
    assert records[0].value == "only"
    assert "only 1 remain" in caplog.text


def test_unrecognized_lines_are_dropped(caplog):
    caplog.set_level(logging.WARNING)
    records = split("not a record\nok=1\nscalar[Int32]\n")
    assert [r.name for r in records] == ["ok"]
    assert caplog.text.count("Dropping malformed line") == 2


def test_legacy_dotted_children_attach_to_parent():
    src = "opts[HashTable]\nopts.Key=retries\nopts.Value[Int32]=3\nother=x\nopts.Key=mode\nopts.Value=fast\n"
    records = split(src)
    assert [r.name for r in records] == ["opts", "other"]
    assert [(c.name, c.value) for c in records[0].children] == [
        ("Key", "retries"),
        ("Value", "3"),
        ("Key", "mode"),
        ("Value", "fast"),
    ]


def test_dotted_name_without_composite_parent_is_a_plain_record():
    records = split("db.host=localhost\n")
    assert records[0].name == "db.host"
    assert records[0].value == "localhost"


def test_crlf_lines_are_accepted():
    records = split("x=1\r\ny[Int32]=2\r\n")
    assert [(r.name, r.value) for r in records] == [("x", "1"), ("y", "2")]


def test_empty_text():
    assert split("") == []
    assert join([]) == ""


def test_dotted_scalar_after_counted_composite_stays_top_level():
    src = "db[HashTable:2]\nKey=port\nValue[Int32]=5432\ndb.host=localhost\n"
    records = split(src)
    assert [r.name for r in records] == ["db", "db.host"]
    assert [c.name for c in records[0].children] == ["Key", "Value"]
    assert records[1].value == "localhost"
    assert join(records) == src


def test_dotted_name_needs_legacy_child_shape_to_attach():
    records = split("opts[HashTable]\nopts.host=x\narr[String[]]\narr.1=b\narr.0=a\narr.name=n\n")
    assert [r.name for r in records] == ["opts", "opts.host", "arr", "arr.name"]
    assert records[0].children == []
    assert [(c.name, c.value) for c in records[2].children] == [("1", "b"), ("0", "a")]


def test_nested_parse_warnings_report_file_line_numbers(caplog):
    caplog.set_level(logging.WARNING)
    records = split("# header\nouter[HashTable:3]\nKey=a\nbad line\nValue=b\n")
    assert [(c.name, c.value) for c in records[1].children] == [("Key", "a"), ("Value", "b")]
    assert "line 4: invalid record name 'bad line'" in caplog.text
