"""
Discovers, loads, and runs workflow nodes.

Nodes are Python modules inside the ``nodes/`` package that expose
a top-level ``Node`` class inheriting from ``WorkflowNode``.
"""

from __future__ import annotations

import importlib
import logging
import pkgutil
from pathlib import Path

from .context import ExecutionContext
from .errors import NodeError
from .events import EventBus
from .node_base import ModelOption, NodeItem, WorkflowNode

logger = logging.getLogger(__name__)


class NodeManager:
    """
    Registry + runner for workflow nodes.

    Parameters
    ----------
    event_bus : EventBus
        Shared bus – the manager publishes node-related events.
    node_package : str
        Dotted import path of the package that holds nodes.
    """

    def __init__(self, event_bus: EventBus, node_package: str = "nodes"):
        self._bus = event_bus
        self._package = node_package
        self._registry: dict[str, type[WorkflowNode]] = {}
        self._instances: dict[str, WorkflowNode] = {}

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------
    def discover(self) -> list[str]:
        """
        Scan the node package and register every module that exposes
        a ``Node`` class deriving from ``WorkflowNode``.

        Returns the list of discovered node names.
        """
        try:
            pkg = importlib.import_module(self._package)
        except ModuleNotFoundError:
            logger.warning("Node package %r not found", self._package)
            return []

        pkg_path = Path(pkg.__file__).parent

        for _, module_name, _ in pkgutil.iter_modules([str(pkg_path)]):
            full = f"{self._package}.{module_name}"
            try:
                mod = importlib.import_module(full)
            except Exception:
                logger.exception("Failed to import node module %s", full)
                continue

            cls = getattr(mod, "Node", None)
            if cls is not None and isinstance(cls, type) and issubclass(cls, WorkflowNode):
                self._registry[module_name] = cls

        self._bus.publish("nodes_discovered", {
            "names": list(self._registry.keys()),
        })
        return list(self._registry.keys())

    def register(self, name: str, cls: type[WorkflowNode]) -> None:
        """Manually register a node class under *name*."""
        self._registry[name] = cls
        self._instances.pop(name, None)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def available(self) -> dict[str, type[WorkflowNode]]:
        return dict(self._registry)

    def get(self, name: str) -> WorkflowNode:
        """Return the (cached) instance of the named node."""
        if name not in self._registry:
            raise KeyError(f"Unknown node: {name!r}")
        if name not in self._instances:
            self._instances[name] = self._registry[name]()
        return self._instances[name]

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------
    def run(self, name: str, context: ExecutionContext) -> list[NodeItem]:
        """
        Execute the named node over every item of *context*.

        Item failures that the node turned into ``{"error": ...}`` rows
        are reported as ``node_item_failed`` events; a failure that
        aborts the run is re-raised after the event is published.
        """
        node = self.get(name)
        if context.event_bus is None:
            context.event_bus = self._bus

        self._bus.publish("node_started", {
            "node": name,
            "execution_id": context.execution_id,
            "items": len(context.items),
        })
        try:
            outputs = node.execute(context)
        except NodeError as e:
            self._bus.publish("node_item_failed", {
                "node": name,
                "item_index": e.item_index,
                "error": e.message,
            })
            raise

        for out in outputs:
            if "error" in out.json:
                self._bus.publish("node_item_failed", {
                    "node": name,
                    "item_index": out.paired_item,
                    "error": out.json["error"],
                })

        self._bus.publish("node_finished", {
            "node": name,
            "execution_id": context.execution_id,
            "outputs": len(outputs),
        })
        return outputs

    def load_options(self, name: str, method: str, context: ExecutionContext) -> list[ModelOption]:
        """Fill a dropdown of the named node."""
        return self.get(name).load_options(method, context)
