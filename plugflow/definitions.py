"""Loading workflow definitions from JSON or YAML files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List

import yaml

from .contracts import WorkflowDefinition


def _read_document(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        return yaml.safe_load(text)
    return json.loads(text)


def load_definition_file(path: str | Path) -> List[WorkflowDefinition]:
    """Parse one definition, or a list of definitions, from ``path``.

    Files ending in ``.yaml``/``.yml`` are read as YAML, anything else as
    JSON. Keys may be camelCase (``pluginId``) or snake_case (``plugin_id``).

    Raises:
        ValueError: If the document is neither an object nor a list of objects.
        pydantic.ValidationError: If a definition does not match the schema.
    """
    path = Path(path)
    document = _read_document(path)
    if isinstance(document, dict):
        document = [document]
    if not isinstance(document, list):
        raise ValueError(f"{path}: expected a workflow object or a list of workflows")
    return [WorkflowDefinition.model_validate(item) for item in document]
