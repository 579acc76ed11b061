"""Resolution of ``{{stepId.key}}`` references in step configuration."""

from __future__ import annotations

import json
import re
from typing import Any, List

from .context import RunContext

_REFERENCE_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


def interpolate(value: Any, context: RunContext) -> Any:
    """Return ``value`` with every template reference resolved from ``context``.

    Dicts and lists are rebuilt recursively, non-string scalars are returned
    unchanged. A string made of a single reference yields the referenced value
    with its type intact; references embedded in longer text are stringified.

    Raises:
        UnresolvedReferenceError: If a referenced name is absent from
            ``context``.
    """
    if isinstance(value, str):
        return _interpolate_string(value, context)
    if isinstance(value, dict):
        return {key: interpolate(item, context) for key, item in value.items()}
    if isinstance(value, list):
        return [interpolate(item, context) for item in value]
    return value


def _interpolate_string(text: str, context: RunContext) -> Any:
    whole = _REFERENCE_RE.fullmatch(text)
    if whole:
        return context.resolve(whole.group(1))
    return _REFERENCE_RE.sub(
        lambda match: stringify(context.resolve(match.group(1))), text
    )


def stringify(value: Any) -> str:
    """Render a context value for embedding in text."""
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"))


def find_references(value: Any) -> List[str]:
    """List every reference in ``value`` in document order."""
    if isinstance(value, str):
        return [match.group(1) for match in _REFERENCE_RE.finditer(value)]
    if isinstance(value, dict):
        return [ref for item in value.values() for ref in find_references(item)]
    if isinstance(value, list):
        return [ref for item in value for ref in find_references(item)]
    return []
