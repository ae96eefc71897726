"""
LM Studio credentials — where the server lives and how to authenticate.

LM Studio doesn't require an API key for local use; the key is only
sent when one is configured (e.g. behind an authenticating proxy).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Mapping, Optional

from core.errors import TransportError
from core.transport import HttpRequest, HttpTransport, UrllibTransport

logger = logging.getLogger(__name__)

DEFAULT_HOST_URL = "http://localhost:1234"
MODELS_PATH = "/api/v0/models"


def normalize_base_url(raw: str) -> str:
    """
    Turn whatever the user typed into a base URL paths can be appended to.

    ``localhost:1234``            -> ``http://localhost:1234``
    ``https://lm.example.com/``   -> ``https://lm.example.com``
    ``http://localhost:1234/v1``  -> ``http://localhost:1234``
    """
    url = (raw or "").strip() or DEFAULT_HOST_URL
    if not url.startswith(("http://", "https://")):
        url = f"http://{url}"
    url = url.rstrip("/")
    # Chat and model paths already start with /v1 or /api
    if url.endswith("/v1"):
        url = url[:-3].rstrip("/")
    return url


@dataclass(frozen=True)
class LmStudioCredentials:
    host_url: str = DEFAULT_HOST_URL
    api_key: str = ""

    type_name: ClassVar[str] = "lmStudioApi"
    display_name: ClassVar[str] = "LM Studio API"
    documentation_url: ClassVar[str] = "https://lmstudio.ai/docs"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LmStudioCredentials":
        return cls(
            host_url=str(data.get("host_url") or DEFAULT_HOST_URL),
            api_key=str(data.get("api_key") or ""),
        )

    @property
    def base_url(self) -> str:
        return normalize_base_url(self.host_url)

    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def check_connection(
        self,
        transport: Optional[HttpTransport] = None,
        timeout_ms: int = 5000,
    ) -> tuple[bool, str]:
        """Probe the models endpoint; never raises."""
        transport = transport or UrllibTransport()
        url = f"{self.base_url}{MODELS_PATH}"
        try:
            transport.request(HttpRequest("GET", url, self.headers(), timeout_ms=timeout_ms))
        except (TransportError, OSError) as e:
            logger.info("Credential check against %s failed: %s", url, e)
            return False, str(e)
        return True, f"Connected to {self.base_url}"

    @staticmethod
    def get_config_schema() -> dict[str, Any]:
        return {
            "host_url": {
                "type": "string",
                "label": "Host URL",
                "default": DEFAULT_HOST_URL,
                "placeholder": DEFAULT_HOST_URL,
                "description": "LM Studio server URL including protocol and port",
            },
            "api_key": {
                "type": "string",
                "label": "API Key",
                "secret": True,
                "default": "",
                "description": "Optional. Leave empty if your server does not "
                               "require authentication.",
            },
        }
