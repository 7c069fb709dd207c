"""Tests for the declarative transform engine."""

from __future__ import annotations

import logging

from etlcore.connectors.models import Transformation
from etlcore.etl.stages.transform import TransformStage, apply_transformations, to_number


def op(kind: str, **options) -> dict:
    return {"type": kind, "options": options}


class TestConcatAndRename:
    """Tests for field combination operations."""

    def test_concat_with_default_glue(self) -> None:
        """Concat should join values with a space by default."""
        result = apply_transformations(
            [op("concat", properties=["first", "last"], to="name")],
            [{"first": "Ada", "last": "Lovelace"}],
        )
        assert result[0]["name"] == "Ada Lovelace"

    def test_concat_skips_empty_values(self) -> None:
        """Missing and empty values should not leave stray glue."""
        result = apply_transformations(
            [op("concat", properties=["first", "middle", "last"], glue="-", to="name")],
            [{"first": "Ada", "middle": "", "last": "Lovelace"}],
        )
        assert result[0]["name"] == "Ada-Lovelace"

    def test_rename_key_reads_dotted_path(self) -> None:
        """renameKey should copy a nested value to a new key."""
        records = [{"address": {"city": "London"}}]
        result = apply_transformations(
            [op("renameKey", **{"from": "address.city", "to": "city"})], records
        )
        assert result[0]["city"] == "London"
        assert result[0]["address"] == {"city": "London"}


class TestStringOperations:
    """Tests for case, trim, prefix and suffix operations."""

    def test_case_and_trim(self) -> None:
        """String ops should write back to the field or to a new key."""
        records = [{"email": "  Ada@Example.COM "}]
        result = apply_transformations(
            [
                op("trim", field="email"),
                op("lowercase", field="email"),
                op("uppercase", field="email", to="shout"),
            ],
            records,
        )
        assert result[0]["email"] == "ada@example.com"
        assert result[0]["shout"] == "ADA@EXAMPLE.COM"

    def test_missing_value_becomes_empty_string(self) -> None:
        """Case ops on a missing field should yield an empty string."""
        result = apply_transformations([op("uppercase", field="nope")], [{"id": 1}])
        assert result[0]["nope"] == ""

    def test_prefix_and_suffix(self) -> None:
        """Prefix and suffix should treat missing values as empty."""
        result = apply_transformations(
            [
                op("addPrefix", field="id", prefix="C-"),
                op("addSuffix", field="code", suffix="!", to="tagged"),
            ],
            [{"id": 7}],
        )
        assert result[0]["id"] == "C-7"
        assert result[0]["tagged"] == "!"

    def test_replace_is_global_regex(self) -> None:
        """replace should substitute every regex match."""
        result = apply_transformations(
            [op("replace", field="phone", search=r"\D", replace="")],
            [{"phone": "+1 (555) 010-9999"}],
        )
        assert result[0]["phone"] == "15550109999"

    def test_replace_group_references(self) -> None:
        """$n, $& and $$ in the replacement refer to the match."""
        result = apply_transformations(
            [
                op("replace", field="range", search=r"(\d+)-(\d+)", replace="$2/$1"),
                op("replace", field="price", search=r"\d+", replace="$$$&"),
            ],
            [{"range": "12-34", "price": "cost 5"}],
        )
        assert result[0]["range"] == "34/12"
        assert result[0]["price"] == "cost $5"

    def test_replace_treats_backslashes_literally(self) -> None:
        """Backslashes and unknown group numbers are copied as-is."""
        result = apply_transformations(
            [
                op("replace", field="path", search="/", replace="\\"),
                op("replace", field="code", search="A", replace=r"\1$3"),
            ],
            [{"path": "a/b/c", "code": "xAy"}],
        )
        assert result[0]["path"] == "a\\b\\c"
        assert result[0]["code"] == "x\\1$3y"

    def test_split(self) -> None:
        """split should produce a list, or an empty list for missing values."""
        result = apply_transformations(
            [op("split", field="tags", delimiter=",", to="tag_list")],
            [{"tags": "a,b,c"}, {}],
        )
        assert result[0]["tag_list"] == ["a", "b", "c"]
        assert result[1]["tag_list"] == []


class TestNumbersAndExtraction:
    """Tests for toNumber, extract and mergeObjects."""

    def test_to_number_parses_leading_number(self) -> None:
        """Leading numbers parse; anything else is zero."""
        assert to_number("12.5kg") == 12.5
        assert to_number("  -3") == -3
        assert to_number("n/a") == 0
        assert to_number(None) == 0
        assert to_number(4) == 4

    def test_to_number_keeps_integers_integral(self) -> None:
        """Whole numbers come back as int; fractions stay float."""
        assert isinstance(to_number("36"), int)
        assert isinstance(to_number(2.0), int)
        assert isinstance(to_number(True), int)
        assert isinstance(to_number("1.5"), float)
        assert to_number(float("nan")) == 0

    def test_to_number_operation(self) -> None:
        """toNumber should write the parsed value."""
        result = apply_transformations(
            [op("toNumber", field="age", to="age_num")], [{"age": "36"}, {"age": "x"}]
        )
        assert [r["age_num"] for r in result] == [36, 0]

    def test_to_number_then_prefix(self) -> None:
        """A parsed whole number renders without a decimal point."""
        result = apply_transformations(
            [op("toNumber", field="price"), op("addPrefix", field="price", prefix="$")],
            [{"price": "36 USD"}],
        )
        assert result[0]["price"] == "$36"

    def test_extract_capture_group(self) -> None:
        """extract should prefer the first capture group."""
        result = apply_transformations(
            [op("extract", field="email", pattern=r"@(.+)$", to="domain")],
            [{"email": "ada@example.com"}, {"email": "invalid"}],
        )
        assert result[0]["domain"] == "example.com"
        assert result[1]["domain"] == ""

    def test_extract_whole_match_without_groups(self) -> None:
        """Without capture groups the whole match is used."""
        result = apply_transformations(
            [op("extract", field="ref", pattern=r"\d+", to="num")], [{"ref": "INV-0042"}]
        )
        assert result[0]["num"] == "0042"

    def test_extract_slice(self) -> None:
        """start/end should slice the value."""
        result = apply_transformations(
            [op("extract", field="date", start=0, end=4, to="year")], [{"date": "2024-05-01"}]
        )
        assert result[0]["year"] == "2024"

    def test_merge_objects(self) -> None:
        """mergeObjects should collect present fields only."""
        result = apply_transformations(
            [op("mergeObjects", fields=["first", "last", "middle"], to="person")],
            [{"first": "Ada", "last": "Lovelace"}],
        )
        assert result[0]["person"] == {"first": "Ada", "last": "Lovelace"}


class TestEngineBehaviour:
    """Tests for ordering, immutability and skipped operations."""

    def test_empty_list_is_identity(self) -> None:
        """No operations should return equal records."""
        records = [{"a": 1}]
        assert apply_transformations([], records) == records

    def test_input_records_are_not_mutated(self) -> None:
        """Transforms should build new records."""
        records = [{"name": "ada"}]
        apply_transformations([op("uppercase", field="name")], records)
        assert records == [{"name": "ada"}]

    def test_operations_apply_in_order(self) -> None:
        """Later operations should see earlier results."""
        result = apply_transformations(
            [
                op("concat", properties=["first", "last"], to="name"),
                op("uppercase", field="name"),
            ],
            [{"first": "Ada", "last": "Lovelace"}],
        )
        assert result[0]["name"] == "ADA LOVELACE"

    def test_missing_options_skip_operation(self) -> None:
        """An operation missing required options should be a no-op."""
        records = [{"a": "x"}]
        result = apply_transformations(
            [op("concat", properties=["a"]), op("split", field="a", to="b")], records
        )
        assert result == records

    def test_unknown_kind_is_logged_and_skipped(self, caplog) -> None:
        """Unknown operation kinds should warn and continue."""
        with caplog.at_level(logging.WARNING):
            result = apply_transformations(
                [op("reverse", field="a"), op("uppercase", field="a")], [{"a": "x"}]
            )
        assert result[0]["a"] == "X"
        assert "Unknown transformation type: reverse" in caplog.text

    def test_transform_stage_reports_counts(self) -> None:
        """TransformStage should wrap the engine with counts."""
        stage = TransformStage([Transformation(type="lowercase", options={"field": "a"})])
        result = stage.transform([{"a": "X"}, {"a": "Y"}])
        assert result.records == [{"a": "x"}, {"a": "y"}]
        assert result.input_count == 2
        assert result.operations_applied == 1
