"""Extraction of step outputs from plugin results via ``$.a.b`` paths."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

from .errors import PathNotFoundError

ROOT = "$"


def parse_path(path: str) -> List[str]:
    """Split a path expression into its field names.

    Only dotted field access is supported: ``$`` or ``$.field.sub``.
    """
    if path == ROOT:
        return []
    if not path.startswith(ROOT + "."):
        raise PathNotFoundError(path, "path must start with '$.'")
    segments = path[len(ROOT) + 1 :].split(".")
    if any(not segment for segment in segments):
        raise PathNotFoundError(path, "empty path segment")
    return segments


def extract_path(payload: Any, path: str) -> Any:
    """Return the value at ``path`` inside ``payload``.

    A key that is present with a ``None`` value counts as found; a missing key
    or a non-mapping intermediate value raises ``PathNotFoundError``.
    """
    current = payload
    for segment in parse_path(path):
        if not isinstance(current, Mapping) or segment not in current:
            raise PathNotFoundError(path)
        current = current[segment]
    return current


def extract_outputs(payload: Any, output_mapping: Mapping[str, str]) -> Dict[str, Any]:
    """Apply every ``name -> path`` entry of ``output_mapping`` to ``payload``."""
    return {name: extract_path(payload, path) for name, path in output_mapping.items()}
