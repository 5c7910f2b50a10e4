"""Field mapping and payload transformation between systems.

Mapping config::

    {
        "sourceFields": ["user.firstName", "user.age"],
        "targetFields": ["name", "profile.age"],
        "transformations": {"user.age": {"type": "number"}},
    }

Rule trees for ``transform`` map output keys to literals, nested rule
objects, or operator strings such as ``"$concat:first:last"``.
"""

import json
from datetime import datetime, timezone
from typing import Any, Union

import structlog

from core.exceptions import ConfigurationError
from core.utils import get_nested, parse_datetime, set_nested

logger = structlog.get_logger(__name__)

_TRUE_STRINGS = {"true", "1", "yes", "y", "on"}
_FALSE_STRINGS = {"false", "0", "no", "n", "off", ""}
_MISSING = object()


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _to_number(value: Any) -> Union[int, float]:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            return float(text)
    raise ValueError(f"Cannot convert {value!r} to number")


class DataMapper:
    """Maps and reshapes dict payloads."""

    def transform(self, data: dict, transformation_logic: Union[str, dict]) -> dict:
        """Apply a JSON-encoded rule tree to ``data``."""
        try:
            rules = (
                json.loads(transformation_logic)
                if isinstance(transformation_logic, str)
                else transformation_logic
            )
            if not isinstance(rules, dict):
                raise ValueError("Transformation logic must be a JSON object")
            return self._apply_rules(rules, data)
        except Exception as e:
            logger.error("Transformation failed", error=str(e))
            raise ConfigurationError(f"Transformation failed: {e}") from e

    def validate_mapping(self, config: dict) -> bool:
        """Check the shape of a mapping config. Field existence is not checked."""
        try:
            if not isinstance(config, dict):
                raise ValueError("Mapping configuration must be an object")
            sources, targets = config.get("sourceFields"), config.get("targetFields")
            if not isinstance(sources, list) or not isinstance(targets, list):
                raise ValueError("Source and target fields must be arrays")
            if len(sources) != len(targets):
                raise ValueError("Source and target fields must have the same length")
            if not all(isinstance(f, str) and f for f in sources + targets):
                raise ValueError("Field paths must be non-empty strings")

            transformations = config.get("transformations", {})
            if not isinstance(transformations, dict):
                raise ValueError("Transformations must be an object")
            for field_path, transformation in transformations.items():
                if not isinstance(transformation, dict):
                    raise ValueError(f"Transformation for {field_path} must be an object")
        except ValueError as e:
            raise ConfigurationError(f"Mapping validation failed: {e}") from e
        return True

    def map_data(self, source_data: dict, mapping_config: dict) -> dict:
        """Copy source fields to target paths, applying typed transformations."""
        try:
            self.validate_mapping(mapping_config)
            transformations = mapping_config.get("transformations") or {}
            result: dict = {}
            for source_field, target_field in zip(
                mapping_config["sourceFields"], mapping_config["targetFields"]
            ):
                value = get_nested(source_data, source_field)
                transformation = transformations.get(source_field)
                if transformation:
                    value = self._apply_transformation(value, transformation)
                set_nested(result, target_field, value)
            return result
        except Exception as e:
            logger.error("Data mapping failed", error=str(e))
            raise ConfigurationError(f"Data mapping failed: {e}") from e

    # ─── Internals ───────────────────────────────────────────────

    def _apply_rules(self, rules: dict, data: dict) -> dict:
        result: dict = {}
        for key, rule in rules.items():
            if isinstance(rule, str) and rule.startswith("$"):
                result[key] = self._apply_operator(rule, data)
            elif isinstance(rule, dict):
                result[key] = self._apply_rules(rule, data)
            else:
                result[key] = rule
        return result

    def _apply_operator(self, rule: str, data: dict) -> Any:
        operator, *args = rule[1:].split(":")
        if operator == "concat":
            return "".join(_text(get_nested(data, arg)) for arg in args)
        if operator == "sum":
            total: Union[int, float] = 0
            for arg in args:
                try:
                    total += _to_number(get_nested(data, arg))
                except (TypeError, ValueError):
                    continue
            return total
        if operator == "toUpper":
            return _text(get_nested(data, args[0])).upper() if args else ""
        if operator == "toLower":
            return _text(get_nested(data, args[0])).lower() if args else ""
        if operator == "default":
            value = get_nested(data, args[0], _MISSING) if args else _MISSING
            if value is _MISSING:
                return args[1] if len(args) > 1 else None
            return value
        raise ValueError(f"Unknown transformation operator: {operator}")

    def _apply_transformation(self, value: Any, transformation: dict) -> Any:
        kind = transformation.get("type")
        if kind is None:
            return value
        if kind == "string":
            return None if value is None else _text(value)
        if kind == "number":
            return None if value is None else _to_number(value)
        if kind == "boolean":
            if isinstance(value, str):
                lowered = value.strip().lower()
                if lowered in _TRUE_STRINGS:
                    return True
                if lowered in _FALSE_STRINGS:
                    return False
            return bool(value)
        if kind == "date":
            if value is None:
                return None
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
            return parse_datetime(value)
        if kind == "custom":
            # "logic" is accepted as an older alias of "operator"
            operator = transformation.get("operator", transformation.get("logic"))
            if isinstance(operator, str) and operator.startswith("$"):
                return self._apply_operator(operator, {"value": value})
            if isinstance(operator, dict):
                return self._apply_rules(operator, {"value": value})
            raise ValueError("Custom transformation requires 'operator'")
        raise ValueError(f"Unsupported transformation type: {kind}")
