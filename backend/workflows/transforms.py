"""
Transform operations for transform steps.

Each operation reads `data[field]`, computes a new value and returns a new
dict; the input dict is never modified. A value of the wrong shape for an
operation (e.g. `map` over a non-list) leaves the data as it was.
"""

import re
from typing import Any, Callable, Dict, List

from schemas.workflow import Transformation, TransformOperation
from .templating import get_nested_value


class TransformError(ValueError):
    """Raised when a transformation is misconfigured."""
    pass


_FORMAT_KEY = re.compile(r"\{(\w+)\}")


def _require(transform: Transformation, key: str) -> Any:
    if key not in transform.config:
        raise TransformError(
            f"'{transform.operation.value}' on field '{transform.field}' requires config.{key}"
        )
    return transform.config[key]


def _item_field(item: Any, name: str) -> Any:
    return item.get(name) if isinstance(item, dict) else item


def _extract(value: Any, transform: Transformation) -> Any:
    if not isinstance(value, (dict, list)):
        return value
    return get_nested_value(value, _require(transform, "path"))


def _map(value: Any, transform: Transformation) -> Any:
    if not isinstance(value, list):
        return value
    name = _require(transform, "field")
    return [_item_field(item, name) for item in value]


def _filter(value: Any, transform: Transformation) -> Any:
    if not isinstance(value, list):
        return value
    name = transform.config.get("field")
    expected = transform.config.get("value")
    if name is None:
        return [item for item in value if item == expected]
    return [item for item in value if _item_field(item, name) == expected]


def _numbers(values: List[Any]) -> List[float]:
    return [v for v in values if isinstance(v, (int, float)) and not isinstance(v, bool)]


_AGGREGATES: Dict[str, Callable[[List[float]], Any]] = {
    "sum": lambda values: sum(values),
    "avg": lambda values: sum(values) / len(values) if values else 0,
    "min": lambda values: min(values) if values else None,
    "max": lambda values: max(values) if values else None,
    "count": lambda values: len(values),
}


def _aggregate(value: Any, transform: Transformation) -> Any:
    if not isinstance(value, list):
        return value
    operation = _require(transform, "operation")
    if operation not in _AGGREGATES:
        raise TransformError(
            f"Unknown aggregate operation '{operation}', expected one of: {', '.join(_AGGREGATES)}"
        )
    name = transform.config.get("field")
    values = [_item_field(item, name) for item in value] if name else list(value)
    return _AGGREGATES[operation](_numbers(values))


def _format(value: Any, transform: Transformation) -> Any:
    template = _require(transform, "template")
    if not isinstance(value, dict):
        return value

    def _replace(match: "re.Match[str]") -> str:
        replacement = value.get(match.group(1))
        return "" if replacement is None else str(replacement)

    return _FORMAT_KEY.sub(_replace, str(template))


def _pick(value: Any, transform: Transformation) -> Any:
    if not isinstance(value, dict):
        return value
    fields = _require(transform, "fields")
    return {key: value[key] for key in fields if key in value}


_VALUE_OPERATIONS = {
    TransformOperation.EXTRACT: _extract,
    TransformOperation.MAP: _map,
    TransformOperation.FILTER: _filter,
    TransformOperation.AGGREGATE: _aggregate,
    TransformOperation.FORMAT: _format,
    TransformOperation.PICK: _pick,
}


def apply_transformation(data: Dict[str, Any], transform: Transformation) -> Dict[str, Any]:
    """Apply a single transformation and return the new data dict."""
    result = dict(data)

    if transform.operation == TransformOperation.RENAME:
        target = _require(transform, "to")
        if transform.field in result:
            result[target] = result.pop(transform.field)
        return result

    handler = _VALUE_OPERATIONS.get(transform.operation)
    if handler is None:
        raise TransformError(f"Unsupported transform operation: {transform.operation}")

    if transform.field not in data:
        return result
    result[transform.field] = handler(data[transform.field], transform)
    return result


def apply_transformations(data: Dict[str, Any], transformations: List[Transformation]) -> Dict[str, Any]:
    """Run the pipeline in order, each step consuming the previous output."""
    for transform in transformations:
        data = apply_transformation(data, transform)
    return data
