"""
Execution context handed to a node for one invocation.

The context is an explicit bundle of everything a node needs from
its host: the input items, the parameter values entered in the UI,
resolved credentials, the failure policy, a cancellation event and
the HTTP transport.  Nodes read from it and never reach out to
globals, so tests can build one by hand.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

from .errors import NodeParameterError
from .node_base import NodeItem
from .transport import HttpTransport, UrllibTransport

if TYPE_CHECKING:
    from .events import EventBus

_MISSING = object()


@dataclass
class ExecutionContext:
    """
    Per-invocation state.

    Parameter values may be plain values (same for every item) or
    callables taking the ``NodeItem`` and returning the value, which
    is how per-item expressions are represented.
    """
    items: list[NodeItem] = field(default_factory=lambda: [NodeItem()])
    parameters: dict[str, Any] = field(default_factory=dict)
    credentials: Mapping[str, Any] = field(default_factory=dict)
    transport: HttpTransport = field(default_factory=UrllibTransport)
    continue_on_fail: bool = False
    cancel_event: threading.Event = field(default_factory=threading.Event)
    event_bus: Optional["EventBus"] = None
    execution_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def get_parameter(self, name: str, item_index: int, default: Any = _MISSING) -> Any:
        """Resolve parameter *name* for the item at *item_index*."""
        if name in self.parameters:
            value = self.parameters[name]
        elif default is not _MISSING:
            return default
        else:
            raise NodeParameterError(
                f"Missing required parameter {name!r}", item_index=item_index,
            )

        if callable(value):
            resolver: Callable[[NodeItem], Any] = value
            try:
                value = resolver(self.items[item_index])
            except Exception as e:
                raise NodeParameterError(
                    f"Could not resolve parameter {name!r}: {e!r}",
                    item_index=item_index,
                ) from e
        return value

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()

    def publish(self, event: str, data: dict[str, Any] | None = None) -> None:
        """Forward an event to the bus, if the host attached one."""
        if self.event_bus is not None:
            self.event_bus.publish(event, data)
