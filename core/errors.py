"""
Error types raised by workflow nodes and their transports.

Every node failure is a ``NodeError``.  The node manager and the
per-item loop rely on ``item_index`` to tell the user which input
row failed; when the host runs with *continue on fail* the error's
message is turned into an ``{"error": ...}`` data row instead.

Two families mirror what the host shows in its UI:

* ``NodeOperationError`` – the node itself rejected something
  (bad parameter, bad schema, unusable response).
* ``NodeApiError`` – the remote server could not be reached or
  answered with a failure.
"""

from __future__ import annotations

from typing import Optional


class NodeError(Exception):
    """Base class for every user-visible node failure."""

    def __init__(
        self,
        message: str,
        *,
        description: str = "",
        item_index: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.description = description
        self.item_index = item_index

    def __str__(self) -> str:
        if self.item_index is None:
            return self.message
        return f"{self.message} [item {self.item_index}]"


class NodeOperationError(NodeError):
    """The node refused to continue with the data it was given."""


class NodeApiError(NodeError):
    """The remote API call failed."""

    def __init__(
        self,
        message: str,
        *,
        description: str = "",
        item_index: Optional[int] = None,
        http_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, description=description, item_index=item_index)
        self.http_code = http_code


# ── Operation errors ──────────────────────────────────────────

class NodeParameterError(NodeOperationError):
    """A UI parameter is missing or outside its allowed range."""


class InvalidSchemaError(NodeOperationError):
    """The JSON Schema text could not be parsed into an object."""


class InvalidResponseStructureError(NodeOperationError):
    """The server reply has no ``choices[0].message``."""


class NoContentError(NodeOperationError):
    """The server reply carries an empty message content."""


class ContentParseError(NodeOperationError):
    """Structured output was requested but the content is not JSON."""

    def __init__(self, message: str, *, raw_content: str = "", **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.raw_content = raw_content


# ── API errors ────────────────────────────────────────────────

class RequestFailedError(NodeApiError):
    """Network or HTTP failure that is not a timeout."""


class RequestTimedOutError(NodeApiError):
    """The request hit its timeout or was aborted by cancellation."""


# ── Transport ─────────────────────────────────────────────────

# Codes a transport uses for requests that ran out of time or were
# aborted by the caller.
TIMEOUT_CODES = frozenset({
    "ETIMEDOUT",
    "ECONNABORTED",
    "ESOCKETTIMEDOUT",
    "ABORT_ERR",
})


class TransportError(Exception):
    """
    Raised by an ``HttpTransport`` when the call did not produce a
    usable 2xx JSON reply.

    Parameters
    ----------
    code : str
        Short machine-readable code (``"ETIMEDOUT"``, ``"ECONNREFUSED"``,
        ``"HTTP_ERROR"``, ``"INVALID_JSON"`` …).
    message : str
        Human-readable description, shown to the user.
    status : int | None
        HTTP status code when the server answered.
    """

    def __init__(self, code: str, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status

    @property
    def is_timeout(self) -> bool:
        return self.code in TIMEOUT_CODES
