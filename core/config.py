"""
Node configuration store backed by a JSON file.

Holds credentials and per-node parameter defaults so the runner and
the CLI can build an ``ExecutionContext`` without a host UI::

    {
        "credentials": {
            "lmstudio": {"host_url": "http://localhost:1234", "api_key": ""}
        },
        "nodes": {
            "lmstudio_message": {"temperature": 0.7, "timeout": 60}
        }
    }

Values missing from the file fall back to ``DEFAULTS``.  The
``LM_STUDIO_URL`` and ``LM_STUDIO_API_KEY`` environment variables
override the stored LM Studio credentials.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any

from .events import EventBus

logger = logging.getLogger(__name__)

_DEFAULT_PATH = Path("config.json")

DEFAULTS: dict[str, Any] = {
    "credentials": {
        "lmstudio": {
            "host_url": "http://localhost:1234",
            "api_key": "",
        },
    },
    "nodes": {
        "lmstudio_message": {
            "temperature": 1.0,
            "max_tokens": None,
            "timeout": 0,
            "json_schema": "",
        },
    },
}

_ENV_OVERRIDES = {
    "LM_STUDIO_URL": "credentials.lmstudio.host_url",
    "LM_STUDIO_API_KEY": "credentials.lmstudio.api_key",
}


class Config:
    """
    Hierarchical configuration backed by a JSON file.

    Keys use dot notation: ``"credentials.lmstudio.host_url"``,
    ``"nodes.lmstudio_message.timeout"``.
    """

    def __init__(self, event_bus: EventBus, path: Path | str = _DEFAULT_PATH):
        self._bus = event_bus
        self._path = Path(path)
        self._data: dict[str, Any] = {}
        self._load()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def get(self, key: str, default: Any = None) -> Any:
        value = _lookup(self._data, key)
        if value is _MISSING:
            value = _lookup(DEFAULTS, key)
        return default if value is _MISSING else value

    def set(self, key: str, value: Any, *, save: bool = True) -> None:
        parts = key.split(".")
        node = self._data
        for p in parts[:-1]:
            child = node.get(p)
            if not isinstance(child, dict):
                child = node[p] = {}
            node = child
        node[parts[-1]] = value

        if save:
            self._save()

        self._bus.publish("config_changed", {"key": key, "value": value})

    def section(self, prefix: str) -> dict[str, Any]:
        """Return a shallow copy of everything under *prefix*, defaults included."""
        merged: dict[str, Any] = {}
        for source in (DEFAULTS, self._data):
            node = _lookup(source, prefix)
            if isinstance(node, dict):
                merged.update(node)
        return merged

    def credentials(self, kind: str) -> dict[str, Any]:
        """Resolved credentials of type *kind* with environment overrides applied."""
        creds = self.section(f"credentials.{kind}")
        prefix = f"credentials.{kind}."
        for env_var, key in _ENV_OVERRIDES.items():
            if key.startswith(prefix) and os.environ.get(env_var):
                creds[key[len(prefix):]] = os.environ[env_var]
        return creds

    def node_defaults(self, node: str) -> dict[str, Any]:
        return self.section(f"nodes.{node}")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable config %s: %s", self._path, e)
            return
        if isinstance(data, dict):
            self._data = data
        else:
            logger.warning("Ignoring config %s: top level is not an object", self._path)

    def _save(self) -> None:
        try:
            self._path.write_text(
                json.dumps(self._data, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as e:
            logger.error("Could not write config %s: %s", self._path, e)


_MISSING = object()


def _lookup(data: dict[str, Any], key: str) -> Any:
    node: Any = data
    for p in key.split("."):
        if not isinstance(node, dict) or p not in node:
            return _MISSING
        node = node[p]
    return copy.deepcopy(node) if isinstance(node, (dict, list)) else node
