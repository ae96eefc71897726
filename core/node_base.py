"""
Abstract base class that every workflow node must implement.

A node exposes a uniform interface so the host can discover it,
render its parameter form, fill dropdowns and run it over a batch
of input items without knowing anything about the backend it talks
to.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .context import ExecutionContext


@dataclass
class NodeItem:
    """One row of workflow data flowing between nodes."""
    json: dict[str, Any] = field(default_factory=dict)
    paired_item: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"json": self.json}
        if self.paired_item is not None:
            data["pairedItem"] = {"item": self.paired_item}
        return data


@dataclass
class ModelInfo:
    """Describes a single model offered by an LLM server."""
    id: str
    type: str = "llm"
    loaded: bool = False
    quantization: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ModelOption:
    """An entry of a dynamically loaded dropdown."""
    name: str
    value: str
    description: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data = {"name": self.name, "value": self.value}
        if self.description:
            data["description"] = self.description
        return data


class WorkflowNode(ABC):
    """
    Contract every workflow node must fulfil.

    Lifecycle
    ---------
    1. ``__init__``  – lightweight, no network calls.
    2. ``execute``   – run once per invocation over all input items.

    ``load_options`` may be called at any time by the host UI to fill
    an ``options`` parameter whose descriptor names a loader method.
    """

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------
    @property
    @abstractmethod
    def name(self) -> str:
        """Internal identifier (e.g. 'lmStudioSimpleMessage')."""

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable name shown in the UI."""

    @property
    @abstractmethod
    def version(self) -> int:
        """Node type version."""

    @property
    def description(self) -> dict[str, Any]:
        """Static node description the host shows in its node palette."""
        return {
            "name": self.name,
            "displayName": self.display_name,
            "version": self.version,
            "properties": self.get_config_schema(),
        }

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    @abstractmethod
    def execute(self, context: "ExecutionContext") -> list[NodeItem]:
        """
        Process every input item of *context* and return the output rows.

        Raises
        ------
        NodeError
            When an item fails and the context does not continue on fail.
        """

    def load_options(self, method: str, context: "ExecutionContext") -> list[ModelOption]:
        """Dispatch a dropdown loader by the name used in the schema."""
        loader = self.option_loaders().get(method)
        if loader is None:
            raise KeyError(f"{self.name} has no option loader {method!r}")
        return loader(context)

    def option_loaders(self) -> dict[str, Any]:
        """Map of loader names to callables; override to provide some."""
        return {}

    # ------------------------------------------------------------------
    # Optional overrides
    # ------------------------------------------------------------------
    def get_config_schema(self) -> dict[str, Any]:
        """
        Return a dict describing the parameters this node accepts.
        The host UI renders matching input widgets.

        Example
        -------
        {
            "message":     {"type": "string", "label": "Message",
                            "required": True},
            "temperature": {"type": "float", "label": "Temperature",
                            "min": 0.0, "max": 2.0, "default": 1.0},
        }
        """
        return {}
