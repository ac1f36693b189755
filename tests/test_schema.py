import pytest

from pveform.catalog import MEMORY, get_schema, drive_schema
from pveform.errors import SchemaError, ValidationError
from pveform.schema import PropertyDescriptor as P, PropertySchema


def test_duplicate_names_rejected():
    with pytest.raises(SchemaError):
        PropertySchema("x", [P("a"), P("a")])


def test_single_default_key():
    with pytest.raises(SchemaError):
        PropertySchema("x", [P("a", is_default_key=True), P("b", is_default_key=True)])


def test_unknown_kind_rejected():
    with pytest.raises(SchemaError):
        P("a", "float")


def test_enum_needs_choices():
    with pytest.raises(SchemaError):
        P("a", "enum")


def test_schema_lookup():
    schema = PropertySchema("x", [P("a"), P("b", "integer", is_default_key=True)])
    assert schema.default_key.name == "b"
    assert schema.names() == ["a", "b"]
    assert "a" in schema and "c" not in schema
    assert schema.order_of("b") == 1
    assert schema.order_of("zzz") == 2


def test_validate_names_sub_property():
    with pytest.raises(ValidationError) as exc:
        MEMORY.validate({"current": 8})
    assert exc.value.field == "current"


def test_validate_required():
    with pytest.raises(ValidationError) as exc:
        drive_schema("scsi").validate({"media": "cdrom"})
    assert exc.value.field == "file"


def test_catalog_lookup_errors():
    assert get_schema("memory") is MEMORY
    with pytest.raises(SchemaError):
        get_schema("nope")
    with pytest.raises(SchemaError):
        drive_schema("nvme")
