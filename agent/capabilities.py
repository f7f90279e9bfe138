"""Capability registry: name -> handler map consumed by the session loop.

Tool modules expose ``register(registry, ctx)`` and call
``registry.register(name=..., description=..., parameters=..., handler=...)``
for each capability.  Handlers take the directive's ``args`` dict and
return a JSON-serializable dict that the loop feeds back to the model.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], Dict[str, Any]]


class UnknownCapabilityError(KeyError):
    """A directive named a capability the registry does not know."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self):
        return f"Unknown capability: {self.name}"


@dataclass(frozen=True)
class Capability:
    name: str
    handler: Handler
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)


class CapabilityRegistry:
    """Static mapping of capability name to handler.

    Registration happens once while a deployment is wired; afterwards the
    registry is only read, so no locking is needed.
    """

    def __init__(self):
        self._capabilities: Dict[str, Capability] = {}

    def register(self, name: str, handler: Handler, description: str = "",
                 parameters: Optional[Dict[str, Any]] = None) -> Capability:
        if not name:
            raise ValueError("Capability name must be non-empty")
        if name in self._capabilities:
            logger.debug("Capability %s re-registered", name)
        cap = Capability(name=name, handler=handler, description=description,
                         parameters=parameters or {})
        self._capabilities[name] = cap
        return cap

    def get(self, name: str) -> Capability:
        try:
            return self._capabilities[name]
        except KeyError:
            raise UnknownCapabilityError(name) from None

    def __contains__(self, name: str) -> bool:
        return name in self._capabilities

    def names(self) -> List[str]:
        return sorted(self._capabilities)

    def subset(self, names: Iterable[str]) -> "CapabilityRegistry":
        """A new registry restricted to *names* (unknown names are ignored)."""
        sub = CapabilityRegistry()
        for name in names:
            if name in self._capabilities:
                sub._capabilities[name] = self._capabilities[name]
        return sub

    def dispatch(self, name: str, args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run one handler.  Unknown names raise; handler exceptions propagate."""
        cap = self.get(name)
        output = cap.handler(dict(args or {}))
        if output is None:
            return {}
        if not isinstance(output, dict):
            return {"value": output}
        return output

    def describe(self) -> str:
        """One line per capability, for prompts and ``--list-tools`` output."""
        return "\n".join(
            f"- {cap.name}: {cap.description}" if cap.description else f"- {cap.name}"
            for cap in (self._capabilities[n] for n in self.names())
        )
