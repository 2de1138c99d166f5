"""
Variable access and template resolution.

Templates reference the variable store with `{{ path }}` placeholders, where
path is dotted (`step-1.items.0.id`).
"""

import json
import re
from typing import Any, Dict, Mapping

PLACEHOLDER_PATTERN = re.compile(r"\{\{([^}]+)\}\}")
_WHOLE_PLACEHOLDER = re.compile(r"^\s*\{\{([^}]+)\}\}\s*$")

_MISSING = object()


def _lookup(obj: Any, path: str) -> Any:
    current = obj
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return _MISSING
            current = current[part]
        elif isinstance(current, (list, tuple)):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return _MISSING
        else:
            return _MISSING
    return current


def has_nested_value(obj: Any, path: str) -> bool:
    """True when every segment of `path` exists."""
    return _lookup(obj, path) is not _MISSING


def get_nested_value(obj: Any, path: str) -> Any:
    """Get a value by dotted path. Returns None when any segment is missing."""
    value = _lookup(obj, path)
    return None if value is _MISSING else value


def set_nested_value(obj: Dict[str, Any], path: str, value: Any) -> None:
    """Set a value by dotted path, creating intermediate dicts as needed."""
    parts = path.split(".")
    current = obj
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


def to_template_text(value: Any) -> str:
    """Render a value for embedding inside a larger string."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def resolve_template_string(template: str, variables: Mapping[str, Any]) -> Any:
    """
    Resolve placeholders in a single string.

    A string that is nothing but one placeholder resolves to the referenced
    value itself, keeping its type. Placeholders that cannot be resolved are
    left as written.
    """
    whole = _WHOLE_PLACEHOLDER.match(template)
    if whole:
        value = _lookup(variables, whole.group(1).strip())
        return template if value is _MISSING else value

    def _replace(match: "re.Match[str]") -> str:
        value = _lookup(variables, match.group(1).strip())
        return match.group(0) if value is _MISSING else to_template_text(value)

    return PLACEHOLDER_PATTERN.sub(_replace, template)


def resolve_parameter_templates(template: Any, variables: Mapping[str, Any]) -> Any:
    """
    Recursively resolve placeholders in a template structure.

    Returns a new structure; the template itself is never modified. Values
    that are neither strings nor containers pass through unchanged.
    """
    if isinstance(template, str):
        return resolve_template_string(template, variables)
    if isinstance(template, Mapping):
        return {key: resolve_parameter_templates(value, variables) for key, value in template.items()}
    if isinstance(template, (list, tuple)):
        return [resolve_parameter_templates(item, variables) for item in template]
    return template
