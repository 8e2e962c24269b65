"""
Tests unitarios para la inferencia de esquema.
"""
import pytest

from dirsync.application.services.schema_inference import (
    STANDARD_COLUMNS,
    diff_columns,
    infer_column_type,
    infer_columns,
    stringify_value,
)
from dirsync.domain.entities.storage import ColumnType


class TestInferColumnType:
    """Tests para infer_column_type()."""

    @pytest.mark.parametrize(
        "name",
        ["enrolledDateTime", "lastSyncTime", "created_at", "expires_on", "created", "Modified"],
    )
    def test_timestamp_by_name_wins(self, name):
        """El nombre tiene prioridad sobre el valor."""
        assert infer_column_type(name, 42) is ColumnType.TIMESTAMP

    def test_bool_before_int(self):
        assert infer_column_type("isEncrypted", True) is ColumnType.BOOLEAN

    def test_int_and_float(self):
        assert infer_column_type("count", 3) is ColumnType.INTEGER
        assert infer_column_type("ratio", 0.5) is ColumnType.FLOAT
        assert infer_column_type("ratio", 5.0) is ColumnType.FLOAT

    def test_timestamp_by_value(self):
        assert infer_column_type("seen", "2023-01-01 10:00:00") is ColumnType.TIMESTAMP

    def test_json_for_arrays_and_objects(self):
        assert infer_column_type("tags", ["a"]) is ColumnType.JSON
        assert infer_column_type("hardwareInformation", {"a": 1}) is ColumnType.JSON

    def test_text_for_strings_and_null(self):
        assert infer_column_type("deviceName", "PC") is ColumnType.TEXT
        assert infer_column_type("notes", None) is ColumnType.TEXT


class TestInferColumns:
    """Tests para infer_columns()."""

    def test_includes_standard_columns(self):
        columns = infer_columns({"deviceName": "PC"})

        for name, col_type in STANDARD_COLUMNS.items():
            assert columns[name] is col_type
        assert columns["deviceName"] is ColumnType.TEXT

    def test_record_id_does_not_change_standard_type(self):
        assert infer_columns({"id": 5})["id"] is ColumnType.TEXT


class TestDiffColumns:
    """Tests para diff_columns()."""

    def test_returns_only_missing(self):
        required = {"id": ColumnType.TEXT, "customTag": ColumnType.TEXT}

        assert diff_columns(["id"], required) == {"customTag": ColumnType.TEXT}

    def test_idempotent_once_applied(self):
        required = infer_columns({"serialNumber": "SN", "isEncrypted": True})

        assert diff_columns(list(required), required) == {}

    def test_case_insensitive_mode(self):
        required = {"SERIALNUMBER": ColumnType.TEXT}

        assert diff_columns(["serialNumber"], required, case_sensitive=False) == {}
        assert diff_columns(["serialNumber"], required, case_sensitive=True) == required

    def test_case_insensitive_collapses_duplicates_in_required(self):
        required = {"Name": ColumnType.TEXT, "name": ColumnType.TEXT}

        assert list(diff_columns([], required, case_sensitive=False)) == ["Name"]


class TestStringifyValue:
    """Tests para stringify_value()."""

    def test_scalars(self):
        assert stringify_value(None) is None
        assert stringify_value(True) == "true"
        assert stringify_value(False) == "false"
        assert stringify_value(42) == "42"
        assert stringify_value(1.5) == "1.5"
        assert stringify_value("PC-1") == "PC-1"

    def test_structures_as_canonical_json(self):
        assert stringify_value({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'

    @pytest.mark.parametrize(
        "raw",
        [
            "2023-01-01T10:00:00Z",
            "2023-01-01T10:00:00.0000000Z",
            "2023-01-01T12:00:00+02:00",
            "2023-01-01T10:00:00",
            "2023-01-01 10:00:00",
        ],
    )
    def test_timestamps_share_one_canonical_form(self, raw):
        assert stringify_value(raw) == "2023-01-01T10:00:00.000000+00:00"

    def test_unparsable_value_in_timestamp_column_is_kept(self):
        assert stringify_value("never", ColumnType.TIMESTAMP) == "never"
