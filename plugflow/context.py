"""Per-run variable store shared between workflow steps."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, Mapping, Optional

from .errors import UnresolvedReferenceError

logger = logging.getLogger(__name__)


class RunContext:
    """Append-only store of resolved variables for a single run.

    Two views are kept in step:

    * ``variables`` - the flat mapping persisted as the run's ``context``. Each
      extracted output lands here under the key chosen in the step's
      ``outputMapping``.
    * ``step_outputs`` - the same values indexed by step id, which is what a
      ``{{stepId.key}}`` reference resolves against.

    Keys are never removed. When two steps declare the same output key the
    later value wins in ``variables`` while each step's namespaced value stays
    reachable through ``stepId.key``.
    """

    def __init__(self, variables: Optional[Mapping[str, Any]] = None) -> None:
        self._variables: Dict[str, Any] = dict(variables or {})
        self._step_outputs: Dict[str, Dict[str, Any]] = {}

    @classmethod
    def from_snapshot(
        cls,
        variables: Mapping[str, Any],
        step_outputs: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> "RunContext":
        context = cls(variables)
        for step_id, outputs in (step_outputs or {}).items():
            context._step_outputs[step_id] = dict(outputs)
        return context

    @property
    def variables(self) -> Dict[str, Any]:
        return dict(self._variables)

    @property
    def step_outputs(self) -> Dict[str, Dict[str, Any]]:
        return {step_id: dict(values) for step_id, values in self._step_outputs.items()}

    def __contains__(self, reference: str) -> bool:
        try:
            self.resolve(reference)
        except UnresolvedReferenceError:
            return False
        return True

    def __iter__(self) -> Iterator[str]:
        return iter(self._variables)

    def __len__(self) -> int:
        return len(self._variables)

    def resolve(self, reference: str) -> Any:
        """Return the value bound to ``reference``.

        An exact variable name takes precedence; otherwise the reference is
        split on its first dot into ``stepId`` and ``key`` and looked up in
        that step's outputs.
        """
        if reference in self._variables:
            return self._variables[reference]

        step_id, sep, key = reference.partition(".")
        if sep:
            outputs = self._step_outputs.get(step_id)
            if outputs is not None and key in outputs:
                return outputs[key]

        raise UnresolvedReferenceError(reference)

    def merge(self, step_id: str, outputs: Mapping[str, Any]) -> None:
        """Record ``outputs`` produced by ``step_id``."""
        namespace = self._step_outputs.setdefault(step_id, {})
        for key, value in outputs.items():
            if key in self._variables and self._variables[key] != value:
                logger.warning(
                    f"Context variable '{key}' overwritten by step '{step_id}'"
                )
            self._variables[key] = value
            namespace[key] = value

    def snapshot(self) -> Dict[str, Any]:
        """Plain copy of the flat variables, suitable for persistence."""
        return dict(self._variables)
