"""
Event bus connecting the node runner to whoever hosts it.

The node manager and the nodes themselves publish progress here
instead of holding references to a UI or a log sink:

* ``nodes_discovered``  – ``{"names": [...]}``
* ``node_started``      – ``{"node", "execution_id", "items"}``
* ``node_item_failed``  – ``{"node", "item_index", "error"}``
* ``node_finished``     – ``{"node", "execution_id", "outputs"}``
* ``activity_log``      – ``{"text": ...}``
* ``config_changed``    – ``{"key", "value"}``

Built on top of QObject so it lives naturally inside a Qt event loop
when the runner is embedded in a desktop host.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from PyQt6.QtCore import QObject, pyqtSignal

logger = logging.getLogger(__name__)


class _Signal(QObject):
    """A single pyqtSignal carrying the event payload dict."""
    fired = pyqtSignal(dict)


class EventBus(QObject):
    """
    Publish/subscribe hub keyed by event name.

    Usage
    -----
    bus = EventBus()
    bus.subscribe("node_finished", lambda d: print(d["outputs"]))
    bus.publish("node_finished", {"node": "lmstudio_message", "outputs": 1})
    """

    def __init__(self, parent: QObject | None = None):
        super().__init__(parent)
        self._channels: dict[str, _Signal] = {}

    def _channel(self, event: str) -> _Signal:
        if event not in self._channels:
            self._channels[event] = _Signal(self)
        return self._channels[event]

    @property
    def events(self) -> list[str]:
        """Names of every event that has been subscribed to or published."""
        return sorted(self._channels)

    def subscribe(self, event: str, callback: Callable[[dict[str, Any]], None]) -> None:
        self._channel(event).fired.connect(callback)

    def unsubscribe(self, event: str, callback: Callable[[dict[str, Any]], None]) -> None:
        if event not in self._channels:
            return
        try:
            self._channels[event].fired.disconnect(callback)
        except TypeError:
            logger.debug("Callback was not subscribed to %r", event)

    def publish(self, event: str, data: dict[str, Any] | None = None) -> None:
        logger.debug("event %s", event)
        self._channel(event).fired.emit(dict(data or {}))
