"""
HTTP transport used by nodes to talk to JSON APIs.

Nodes never call ``urllib`` directly: they build an ``HttpRequest``
and hand it to whatever ``HttpTransport`` the execution context
carries.  Production code uses ``UrllibTransport``; tests inject a
fake that records requests and returns canned replies.

Uses only ``urllib`` — no ``requests`` / ``httpx`` dependency.
"""

from __future__ import annotations

import http.client
import json
import logging
import threading
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from .errors import TransportError

logger = logging.getLogger(__name__)


@dataclass
class HttpRequest:
    """One JSON request.  ``timeout_ms == 0`` means no timeout."""
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Optional[dict[str, Any]] = None
    timeout_ms: int = 0


class HttpTransport(Protocol):
    """Anything that can perform an ``HttpRequest`` and return parsed JSON."""

    def request(
        self,
        req: HttpRequest,
        cancel_event: Optional[threading.Event] = None,
    ) -> Any:
        ...


class UrllibTransport:
    """
    Blocking transport built on ``urllib.request``.

    When a *cancel_event* is supplied the call runs on a worker thread
    and the caller waits on the event, so a cancellation aborts the
    wait immediately.  The worker is a daemon and is simply abandoned;
    its socket closes when the request finishes or times out.
    """

    def __init__(self, poll_interval: float = 0.05) -> None:
        self._poll_interval = poll_interval

    def request(
        self,
        req: HttpRequest,
        cancel_event: Optional[threading.Event] = None,
    ) -> Any:
        if cancel_event is None:
            return self._send(req)

        if cancel_event.is_set():
            raise _aborted(req.url)

        outcome: dict[str, Any] = {}

        def _worker() -> None:
            try:
                outcome["data"] = self._send(req)
            except Exception as e:  # re-raised on the calling thread
                outcome["error"] = e

        worker = threading.Thread(target=_worker, name="http-transport", daemon=True)
        worker.start()
        while True:
            worker.join(self._poll_interval)
            if not worker.is_alive():
                break
            if cancel_event.is_set():
                logger.info("Request to %s cancelled", req.url)
                raise _aborted(req.url)

        if "error" in outcome:
            raise outcome["error"]
        return outcome["data"]

    # ── HTTP helpers ──────────────────────────────────────────

    def _make_request(self, req: HttpRequest) -> urllib.request.Request:
        headers = {"Accept": "application/json", **req.headers}
        data = None
        if req.body is not None:
            headers.setdefault("Content-Type", "application/json")
            data = json.dumps(req.body).encode("utf-8")
        return urllib.request.Request(
            req.url, data=data, headers=headers, method=req.method.upper(),
        )

    def _send(self, req: HttpRequest) -> Any:
        timeout = req.timeout_ms / 1000 if req.timeout_ms > 0 else None
        logger.debug("%s %s (timeout=%s)", req.method, req.url, timeout)
        try:
            with urllib.request.urlopen(self._make_request(req), timeout=timeout) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8", errors="replace").strip()
            message = f"HTTP {e.code} from {req.url}"
            if error_body:
                message = f"{message}: {error_body}"
            raise TransportError(
                "HTTP_ERROR",
                message,
                status=e.code,
            ) from e
        except urllib.error.URLError as e:
            if isinstance(e.reason, TimeoutError):
                raise _timed_out(req.url, timeout) from e
            raise TransportError(
                _os_error_code(e.reason),
                f"Cannot reach {req.url}: {e.reason}",
            ) from e
        except TimeoutError as e:
            raise _timed_out(req.url, timeout) from e
        except OSError as e:
            raise TransportError(
                _os_error_code(e), f"Cannot reach {req.url}: {e}",
            ) from e
        except (http.client.HTTPException, ValueError) as e:
            # Malformed URL (bad port) or a reply cut short mid-body
            raise TransportError(
                "ECONNERROR", f"Cannot reach {req.url}: {e}",
            ) from e

        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise TransportError(
                "INVALID_JSON", f"Invalid JSON received from {req.url}: {e}",
            ) from e


def _timed_out(url: str, timeout: Optional[float]) -> TransportError:
    return TransportError("ETIMEDOUT", f"Request to {url} timed out after {timeout}s")


def _aborted(url: str) -> TransportError:
    return TransportError("ABORT_ERR", f"Request to {url} was aborted")


def _os_error_code(reason: Any) -> str:
    if isinstance(reason, ConnectionRefusedError):
        return "ECONNREFUSED"
    if isinstance(reason, ConnectionResetError):
        return "ECONNRESET"
    return "ECONNERROR"
