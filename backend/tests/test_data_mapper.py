"""Tests for field mapping and rule-based transformation."""

from datetime import datetime, timezone

import pytest

from core.exceptions import ConfigurationError
from integrations.data_mapper import DataMapper


@pytest.fixture
def mapper() -> DataMapper:
    return DataMapper()


def _mapping(sources, targets, transformations=None) -> dict:
    config = {"sourceFields": sources, "targetFields": targets}
    if transformations is not None:
        config["transformations"] = transformations
    return config


@pytest.mark.unit
class TestMapData:
    def test_string_mapping(self, mapper):
        result = mapper.map_data(
            {"user": {"firstName": "John"}},
            _mapping(["user.firstName"], ["name"], {"user.firstName": {"type": "string"}}),
        )
        assert result == {"name": "John"}

    def test_nested_target_paths(self, mapper):
        result = mapper.map_data(
            {"user": {"age": "42", "email": "a@b.c"}},
            _mapping(["user.age", "user.email"], ["profile.age", "profile.contact.email"],
                     {"user.age": {"type": "number"}}),
        )
        assert result == {"profile": {"age": 42, "contact": {"email": "a@b.c"}}}

    def test_missing_source_maps_to_none(self, mapper):
        result = mapper.map_data({}, _mapping(["user.name"], ["name"], {"user.name": {"type": "string"}}))
        assert result == {"name": None}

    def test_boolean_strings(self, mapper):
        config = _mapping(["a", "b", "c"], ["a", "b", "c"], {f: {"type": "boolean"} for f in "abc"})
        result = mapper.map_data({"a": "yes", "b": "false", "c": 1}, config)
        assert result == {"a": True, "b": False, "c": True}

    def test_date_from_epoch_millis_and_iso(self, mapper):
        config = _mapping(["ms", "iso"], ["ms", "iso"], {"ms": {"type": "date"}, "iso": {"type": "date"}})
        result = mapper.map_data({"ms": 86_400_000, "iso": "2024-03-01T12:00:00Z"}, config)
        assert result["ms"] == datetime(1970, 1, 2, tzinfo=timezone.utc)
        assert result["iso"] == datetime(2024, 3, 1, 12, tzinfo=timezone.utc)

    def test_custom_operator(self, mapper):
        result = mapper.map_data(
            {"code": "abc"},
            _mapping(["code"], ["code"], {"code": {"type": "custom", "operator": "$toUpper:value"}}),
        )
        assert result == {"code": "ABC"}

    def test_custom_logic_alias(self, mapper):
        result = mapper.map_data(
            {"code": "ABC"},
            _mapping(["code"], ["code"], {"code": {"type": "custom", "logic": {"lower": "$toLower:value"}}}),
        )
        assert result == {"code": {"lower": "abc"}}

    def test_custom_requires_operator(self, mapper):
        with pytest.raises(ConfigurationError, match="requires 'operator'"):
            mapper.map_data({"code": "abc"}, _mapping(["code"], ["code"], {"code": {"type": "custom"}}))

    def test_invalid_number(self, mapper):
        with pytest.raises(ConfigurationError, match="Data mapping failed"):
            mapper.map_data({"n": "many"}, _mapping(["n"], ["n"], {"n": {"type": "number"}}))

    def test_unsupported_type(self, mapper):
        with pytest.raises(ConfigurationError, match="Unsupported transformation type: money"):
            mapper.map_data({"n": 1}, _mapping(["n"], ["n"], {"n": {"type": "money"}}))


@pytest.mark.unit
class TestValidateMapping:
    def test_valid(self, mapper):
        assert mapper.validate_mapping(_mapping(["a"], ["b"])) is True

    def test_length_mismatch(self, mapper):
        with pytest.raises(ConfigurationError, match="same length"):
            mapper.validate_mapping(_mapping(["a", "b"], ["c"]))

    def test_fields_must_be_arrays(self, mapper):
        with pytest.raises(ConfigurationError, match="must be arrays"):
            mapper.validate_mapping({"sourceFields": "a", "targetFields": ["b"]})

    def test_transformation_must_be_object(self, mapper):
        with pytest.raises(ConfigurationError, match="must be an object"):
            mapper.validate_mapping(_mapping(["a"], ["b"], {"a": "string"}))


@pytest.mark.unit
class TestTransform:
    def test_json_rules(self, mapper):
        data = {"first": "Ada", "last": "Lovelace", "net": 10, "tax": "2.5", "note": None}
        logic = (
            '{"full": "$concat:first:last", "upper": "$toUpper:last", "total": "$sum:net:tax:note",'
            ' "meta": {"source": "crm", "lower": "$toLower:first"}}'
        )
        assert mapper.transform(data, logic) == {
            "full": "AdaLovelace",
            "upper": "LOVELACE",
            "total": 12.5,
            "meta": {"source": "crm", "lower": "ada"},
        }

    def test_default_operator(self, mapper):
        rules = {"a": "$default:a:fallback", "b": "$default:b:fallback", "c": "$default:c"}
        result = mapper.transform({"a": 0}, rules)
        assert result == {"a": 0, "b": "fallback", "c": None}

    def test_default_keeps_explicit_null(self, mapper):
        assert mapper.transform({"a": None}, {"a": "$default:a:fallback"}) == {"a": None}

    def test_concat_renders_missing_as_empty(self, mapper):
        assert mapper.transform({"a": "x"}, {"v": "$concat:a:missing"}) == {"v": "x"}

    def test_unknown_operator(self, mapper):
        with pytest.raises(ConfigurationError, match="Unknown transformation operator: explode"):
            mapper.transform({}, {"v": "$explode:a"})

    def test_invalid_json(self, mapper):
        with pytest.raises(ConfigurationError, match="Transformation failed"):
            mapper.transform({}, "{not json")

    def test_logic_must_be_object(self, mapper):
        with pytest.raises(ConfigurationError, match="must be a JSON object"):
            mapper.transform({}, "[1, 2]")
