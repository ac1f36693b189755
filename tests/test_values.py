import pytest

from pveform.values import (
    ValueKind,
    as_int,
    format_size,
    is_empty,
    parse_bool,
    render_boolean,
    render_value,
    value_kind,
)


@pytest.mark.parametrize(
    "value, kind",
    [
        (None, ValueKind.NULL),
        (True, ValueKind.BOOL),
        (0, ValueKind.NUMBER),
        (1.5, ValueKind.NUMBER),
        ("x", ValueKind.STRING),
        ([1], ValueKind.ARRAY),
        ({"a": 1}, ValueKind.OBJECT),
    ],
)
def test_value_kind(value, kind):
    assert value_kind(value) is kind


def test_value_kind_rejects_unknown_types():
    with pytest.raises(TypeError):
        value_kind(object())


@pytest.mark.parametrize("raw", ["1", "true", "Yes", "on", 1, True])
def test_parse_bool_true(raw):
    assert parse_bool(raw) is True


@pytest.mark.parametrize("raw", ["0", "false", "no", "OFF", 0, False])
def test_parse_bool_false(raw):
    assert parse_bool(raw) is False


@pytest.mark.parametrize("raw", ["maybe", 2, None, [1]])
def test_parse_bool_invalid(raw):
    with pytest.raises(ValueError):
        parse_bool(raw)


def test_as_int():
    assert as_int("42") == 42
    assert as_int(7.0) == 7
    with pytest.raises(ValueError):
        as_int(True)
    with pytest.raises(ValueError):
        as_int(2.5)
    with pytest.raises(ValueError):
        as_int("abc")


def test_is_empty_only_null_and_empty_string():
    assert is_empty(None)
    assert is_empty("")
    assert not is_empty(0)
    assert not is_empty(False)


def test_render_helpers():
    assert render_boolean(True) == "Yes"
    assert render_value(None) == "-"
    assert render_value(False) == "No"
    assert render_value(["a", 1]) == "a, 1"


def test_format_size():
    mib = 1024 * 1024
    assert format_size(100) == "100 B"
    assert format_size(512 * mib) == "512 MiB"
    assert format_size(2048 * mib) == "2 GiB"
    assert format_size(1536 * mib) == "1.5 GiB"
