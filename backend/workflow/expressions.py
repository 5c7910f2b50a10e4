"""Template expression evaluation against a running execution.

Supports:
- Variable references: {{ variables.user.email }}
- Execution fields: {{ execution.workflowId }}
- Comparisons and simple calls: {{ variables.total > 100 and len(variables.items) }}
- Inline templates: "/users/{{ variables.user_id }}/orders"
"""

import re
from typing import Any

import structlog

from core.exceptions import ExecutionError
from workflow.models import Execution

logger = structlog.get_logger(__name__)

_TEMPLATE_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")

_SAFE_BUILTINS = {
    "True": True, "False": False, "None": None,
    "len": len, "int": int, "float": float, "str": str,
    "bool": bool, "list": list, "abs": abs,
    "min": min, "max": max, "round": round,
}


class _DotDict(dict):
    """Dict with attribute access so expressions can say variables.user.name."""

    def __getattr__(self, name):
        try:
            return self[name]
        except KeyError:
            raise AttributeError(f"No key '{name}'")


def _make_dot_dict(obj: Any, _depth: int = 0, _max_depth: int = 50) -> Any:
    if _depth >= _max_depth:
        return obj
    if isinstance(obj, dict) and not isinstance(obj, _DotDict):
        return _DotDict({k: _make_dot_dict(v, _depth + 1, _max_depth) for k, v in obj.items()})
    if isinstance(obj, list):
        return [_make_dot_dict(item, _depth + 1, _max_depth) for item in obj]
    return obj


class ExpressionEvaluator:
    """Evaluates ``{{ ... }}`` expressions with a restricted namespace."""

    @staticmethod
    def namespace(execution: Execution) -> _DotDict:
        return _DotDict(
            {
                "variables": _make_dot_dict(execution.context.variables),
                "execution": _DotDict(
                    {
                        "id": execution.id,
                        "workflowId": execution.workflow_id,
                        "currentNode": execution.context.current_node,
                        "metadata": _make_dot_dict(execution.context.metadata),
                    }
                ),
            }
        )

    @classmethod
    def evaluate(cls, expression: Any, execution: Execution, strict: bool = False) -> Any:
        """Evaluate a template expression.

        A string that is exactly one ``{{ ... }}`` returns the raw value; text
        with embedded templates returns the interpolated string; anything
        else is returned unchanged. With ``strict`` a failing expression
        raises ExecutionError instead of returning the input.
        """
        if not isinstance(expression, str):
            return expression

        text = expression.strip()
        whole = _TEMPLATE_RE.fullmatch(text)
        if whole is None and "{{" not in text:
            return expression

        namespace = cls.namespace(execution)
        if whole is not None:
            return cls._evaluate_expr(whole.group(1), namespace, expression, strict)

        return _TEMPLATE_RE.sub(
            lambda m: str(cls._evaluate_expr(m.group(1), namespace, m.group(0), strict)),
            expression,
        )

    @classmethod
    def evaluate_condition(cls, expression: str, execution: Execution) -> bool:
        """Evaluate a condition; bare expressions without braces are allowed."""
        text = expression.strip()
        if text.lower() in ("true", "false"):
            return text.lower() == "true"
        if "{{" not in text:
            text = "{{ " + text + " }}"
        return bool(cls.evaluate(text, execution, strict=True))

    @staticmethod
    def _evaluate_expr(expr: str, namespace: dict, original: str, strict: bool) -> Any:
        try:
            return ExpressionEvaluator._resolve_path(expr, namespace)
        except (KeyError, ValueError, IndexError):
            pass

        try:
            if "__" in expr:
                raise ValueError("dunder access is not allowed")
            return eval(expr, {"__builtins__": _SAFE_BUILTINS}, namespace)
        except Exception as e:
            if strict:
                raise ExecutionError(f"Expression evaluation failed: {expr!r}: {e}") from e
            logger.warning("Expression evaluation failed", expression=expr, error=str(e))
            return original

    @staticmethod
    def _resolve_path(path: str, namespace: dict) -> Any:
        """Resolve a dot-notation path like 'variables.user.name'."""
        if any(c in path for c in "[]()!=<>+-*/ "):
            raise ValueError("Not a simple dot path")

        current: Any = namespace
        for part in path.split("."):
            if isinstance(current, dict):
                if part not in current:
                    raise KeyError(f"Cannot resolve '{part}' in path '{path}'")
                current = current[part]
            elif isinstance(current, list):
                current = current[int(part)]
            else:
                raise KeyError(f"Cannot resolve '{part}' in path '{path}'")
        return current

    @classmethod
    def resolve_config(cls, config: Any, execution: Execution) -> Any:
        """Recursively resolve template expressions in a request payload."""
        if isinstance(config, str):
            return cls.evaluate(config, execution)
        if isinstance(config, dict):
            return {key: cls.resolve_config(value, execution) for key, value in config.items()}
        if isinstance(config, list):
            return [cls.resolve_config(item, execution) for item in config]
        return config
