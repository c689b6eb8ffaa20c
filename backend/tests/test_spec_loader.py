"""Tests for spec loading and validation."""

import pytest
import yaml

from cdcspec.exceptions import ExitCode, SpecInvalid, SpecMalformed, SpecNotFound
from cdcspec.spec_loader import generate_spec_template, load_spec, spec_from_document

from tests.conftest import write_spec


def test_load_valid_spec(tmp_path, spec_document):
    path = write_spec(tmp_path, spec_document)

    spec = load_spec(path)

    assert spec.table_name == "MY_TABLE"
    assert spec.table_lower == "my_table"
    assert spec.table.schema_name == "CDC_TEST"
    assert spec.table.cdc_key == "UPDATED_AT"
    assert spec.range.options == ["5m", "15m", "60m"]
    assert spec.elasticsearch.id_field == "ID"
    assert spec.column_names is None


def test_default_range_is_smallest_window_numerically(spec_document):
    spec_document["range"]["options"] = ["15m", "60m", "5m"]

    assert spec_from_document(spec_document).default_range == "5m"


def test_default_range_can_be_pinned(spec_document):
    spec_document["range"]["default"] = "60m"

    assert spec_from_document(spec_document).default_range == "60m"


def test_missing_file(tmp_path):
    with pytest.raises(SpecNotFound) as exc_info:
        load_spec(tmp_path / "nope.yaml")
    assert exc_info.value.exit_code == ExitCode.SPEC_INVALID


def test_invalid_yaml(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("table: [unclosed\n", encoding="utf-8")

    with pytest.raises(SpecMalformed):
        load_spec(path)


def test_document_must_be_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(SpecMalformed):
        load_spec(path)


def test_id_field_must_equal_primary_key(spec_document):
    spec_document["elasticsearch"]["id_field"] = "PK"

    with pytest.raises(SpecInvalid) as exc_info:
        spec_from_document(spec_document)

    assert exc_info.value.field == "elasticsearch.id_field"
    assert exc_info.value.rule == "I1"
    assert exc_info.value.exit_code == ExitCode.SPEC_INVALID


@pytest.mark.parametrize("section,key,field", [
    ("table", "name", "table.name"),
    ("table", "schema", "table.schema"),
    ("table", "primary_key", "table.primary_key"),
    ("table", "cdc_key", "table.cdc_key"),
    ("elasticsearch", "index", "elasticsearch.index"),
    ("elasticsearch", "id_field", "elasticsearch.id_field"),
    ("range", "options", "range.options"),
])
def test_required_fields(spec_document, section, key, field):
    del spec_document[section][key]

    with pytest.raises(SpecInvalid) as exc_info:
        spec_from_document(spec_document)

    assert exc_info.value.field == field
    assert exc_info.value.rule == "required"


def test_range_options_must_not_be_empty(spec_document):
    spec_document["range"]["options"] = []

    with pytest.raises(SpecInvalid) as exc_info:
        spec_from_document(spec_document)

    assert exc_info.value.field == "range.options"
    assert exc_info.value.rule == "non_empty"


@pytest.mark.parametrize("token", ["5", "5h", "m", "05 m", "-5m"])
def test_range_tokens_must_be_minutes(spec_document, token):
    spec_document["range"]["options"] = ["5m", token]

    with pytest.raises(SpecInvalid) as exc_info:
        spec_from_document(spec_document)

    assert exc_info.value.rule == "range_token"


def test_duplicate_range_options(spec_document):
    spec_document["range"]["options"] = ["5m", "5m"]

    with pytest.raises(SpecInvalid) as exc_info:
        spec_from_document(spec_document)

    assert exc_info.value.rule == "unique"


def test_pinned_default_must_be_an_option(spec_document):
    spec_document["range"]["default"] = "30m"

    with pytest.raises(SpecInvalid) as exc_info:
        spec_from_document(spec_document)

    assert exc_info.value.field == "range.default"
    assert exc_info.value.rule == "default_in_options"


@pytest.mark.parametrize("value", ["MY-TABLE", "1TABLE", "", "TÄBLE", "MY TABLE"])
def test_table_name_must_be_identifier(spec_document, value):
    spec_document["table"]["name"] = value

    with pytest.raises(SpecInvalid) as exc_info:
        spec_from_document(spec_document)

    assert exc_info.value.field == "table.name"
    assert exc_info.value.rule == "identifier"


def test_enumerated_columns_must_include_cdc_key(spec_document):
    spec_document["columns"] = [{"name": "ID"}, {"name": "NAME"}]

    with pytest.raises(SpecInvalid) as exc_info:
        spec_from_document(spec_document)

    assert exc_info.value.field == "table.cdc_key"
    assert exc_info.value.rule == "column_missing"


def test_update_handling_must_be_upsert(spec_document):
    spec_document["cdc"] = {"update_handling": "insert"}

    with pytest.raises(SpecInvalid) as exc_info:
        spec_from_document(spec_document)

    assert exc_info.value.field == "cdc.update_handling"
    assert exc_info.value.rule == "upsert"


def test_file_name_must_match_table(tmp_path, spec_document):
    path = write_spec(tmp_path, spec_document, name="other.yaml")

    with pytest.raises(SpecInvalid) as exc_info:
        load_spec(path)

    assert exc_info.value.rule == "file_name"
    assert exc_info.value.spec_path == str(path)


def test_error_message_names_path_field_and_rule(tmp_path, spec_document):
    spec_document["elasticsearch"]["id_field"] = "PK"
    path = write_spec(tmp_path, spec_document)

    with pytest.raises(SpecInvalid) as exc_info:
        load_spec(path)

    message = str(exc_info.value)
    assert str(path) in message
    assert "SpecInvalid{elasticsearch.id_field, I1}" in message


def test_generated_template_is_a_valid_spec(tmp_path):
    path = tmp_path / "customers.yaml"
    path.write_text(generate_spec_template("customers"), encoding="utf-8")

    spec = load_spec(path)

    assert spec.table_name == "CUSTOMERS"
    assert spec.column_names == ["ID", "NAME", "UPDATED_AT"]
    assert spec.default_range == "5m"
    assert yaml.safe_load(path.read_text())["elasticsearch"]["index"] == "customers"
