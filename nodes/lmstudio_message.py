"""
LM Studio Simple Message node — sends one chat message per input item
to a local LM Studio server.

LM Studio exposes an OpenAI-compatible ``/v1/chat/completions``
endpoint plus its own ``/api/v0/models`` listing, which reports the
model type (llm / vlm / embeddings / asr …), whether it is loaded and
its quantization.  When a JSON Schema is given the request asks for
structured output and the reply is parsed before it is returned.

Every output row has the same shape::

    {"response": <str | dict>,
     "_metadata": {"model", "usage", "created", "id", "finish_reason"}}
"""

from __future__ import annotations

import json
import locale
import logging
from dataclasses import dataclass
from typing import Any, Optional

from core.context import ExecutionContext
from core.errors import (
    ContentParseError,
    InvalidResponseStructureError,
    InvalidSchemaError,
    NoContentError,
    NodeApiError,
    NodeError,
    NodeParameterError,
    RequestFailedError,
    RequestTimedOutError,
    TransportError,
)
from core.node_base import ModelInfo, ModelOption, NodeItem, WorkflowNode
from core.transport import HttpRequest

from .credentials import MODELS_PATH, LmStudioCredentials

logger = logging.getLogger(__name__)

CHAT_PATH = "/v1/chat/completions"
SCHEMA_NAME = "response_schema"
CHAT_MODEL_TYPES = ("llm", "vlm")
LIST_TIMEOUT_MS = 10_000

NO_MODELS_OPTION = ModelOption(
    name="No models found - check LM Studio connection",
    value="",
)


@dataclass
class ChatRequest:
    """Parameters of one chat call, as read from the node form."""
    model: str
    message: str
    temperature: float = 1.0
    max_tokens: Optional[int] = None
    schema: Optional[dict[str, Any]] = None
    timeout: float = 0

    @property
    def structured(self) -> bool:
        return self.schema is not None


# ── Pure helpers ──────────────────────────────────────────────

def parse_json_schema(raw: Any) -> Optional[dict[str, Any]]:
    """
    Return the schema object, or None when no schema was given.

    An empty object counts as "no schema".  Text that is not JSON, or
    JSON that is not an object, raises ``InvalidSchemaError``.
    """
    if raw is None:
        return None
    if isinstance(raw, dict):
        schema: Any = raw
    else:
        text = str(raw).strip()
        if not text:
            return None
        try:
            schema = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidSchemaError(
                f"Invalid JSON Schema: {e.msg} (line {e.lineno}, column {e.colno})",
                description="The JSON Schema field must contain valid JSON.",
            ) from e
    if not isinstance(schema, dict):
        raise InvalidSchemaError(
            "Invalid JSON Schema: expected a JSON object",
            description=f"Got {type(schema).__name__} instead.",
        )
    return schema or None


def build_chat_body(request: ChatRequest) -> dict[str, Any]:
    body: dict[str, Any] = {
        "model": request.model,
        "messages": [{"role": "user", "content": request.message}],
        "temperature": request.temperature,
    }
    if request.max_tokens:
        body["max_tokens"] = request.max_tokens
    if request.schema is not None:
        body["response_format"] = {
            "type": "json_schema",
            "json_schema": {
                "name": SCHEMA_NAME,
                "strict": True,
                "schema": request.schema,
            },
        }
    return body


def map_chat_response(data: Any, *, structured: bool) -> dict[str, Any]:
    """Validate a chat-completions reply and reshape it into an output row."""
    choices = data.get("choices") if isinstance(data, dict) else None
    choice = choices[0] if isinstance(choices, list) and choices else None
    if not isinstance(choice, dict) or not isinstance(choice.get("message"), dict):
        raise InvalidResponseStructureError(
            "Invalid response structure from LM Studio",
            description="Expected choices[0].message in the reply.",
        )

    content = choice["message"].get("content")
    if not content:
        raise NoContentError("No content in response from LM Studio")

    response: Any = content
    if structured and isinstance(content, str):
        try:
            response = json.loads(content)
        except json.JSONDecodeError as e:
            raise ContentParseError(
                f"Failed to parse JSON response from LM Studio: {e.msg}. "
                f"Raw content: {content}",
                raw_content=content,
            ) from e

    return {
        "response": response,
        "_metadata": {
            "model": data.get("model"),
            "usage": data.get("usage"),
            "created": data.get("created"),
            "id": data.get("id"),
            "finish_reason": choice.get("finish_reason"),
        },
    }


def translate_transport_error(err: Exception, timeout: float) -> NodeApiError:
    """Map a transport failure onto the node's API error kinds."""
    code = getattr(err, "code", None)
    status = getattr(err, "status", None)
    detail = getattr(err, "message", None) or str(err)

    if isinstance(err, TimeoutError) or (isinstance(err, TransportError) and err.is_timeout):
        if timeout:
            message = f"Request to LM Studio timed out after {timeout:g} seconds"
        elif code == "ABORT_ERR":
            message = "Request to LM Studio was aborted"
        else:
            message = "Request to LM Studio timed out"
        return RequestTimedOutError(message, description=detail, http_code=status)

    return RequestFailedError(
        f"LM Studio request failed: {detail}",
        description=f"code={code}" if code else "",
        http_code=status,
    )


def parse_models(data: Any) -> list[ModelInfo]:
    """Read the ``/api/v0/models`` reply; malformed input gives no models."""
    entries = data.get("data") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        return []

    models: list[ModelInfo] = []
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("id"):
            continue
        models.append(ModelInfo(
            id=str(entry["id"]),
            type=str(entry.get("type", "")),
            loaded=entry.get("state") == "loaded",
            quantization=entry.get("quantization") or None,
            metadata=entry,
        ))
    return models


def format_model_options(models: list[ModelInfo]) -> list[ModelOption]:
    options = [
        ModelOption(
            name=f"{m.id} (loaded)" if m.loaded else m.id,
            value=m.id,
            description=f"Quantization: {m.quantization}" if m.quantization else None,
        )
        for m in models
        if m.type in CHAT_MODEL_TYPES
    ]
    options.sort(key=lambda o: locale.strxfrm(o.name.casefold()))
    return options


# ── Node ──────────────────────────────────────────────────────

class LmStudioMessageNode(WorkflowNode):
    """Send messages to LM Studio with optional JSON schema for structured output."""

    @property
    def name(self) -> str:
        return "lmStudioSimpleMessage"

    @property
    def display_name(self) -> str:
        return "LM Studio Simple Message"

    @property
    def version(self) -> int:
        return 1

    @property
    def description(self) -> dict[str, Any]:
        desc = super().description
        desc.update({
            "group": ["transform"],
            "description": "Send messages to LM Studio with optional JSON schema "
                           "for structured outputs",
            "defaults": {"name": self.display_name},
            "credentials": [{"name": LmStudioCredentials.type_name, "required": True}],
            "usableAsTool": True,
        })
        return desc

    def option_loaders(self) -> dict[str, Any]:
        return {"get_models": self.get_models}

    # ── Models ────────────────────────────────────────────────

    def get_models(self, context: ExecutionContext) -> list[ModelOption]:
        """
        Dropdown options for the model field.

        Never raises: an unreachable server or an unexpected reply
        yields the single "no models" option.
        """
        creds = LmStudioCredentials.from_mapping(context.credentials)
        url = f"{creds.base_url}{MODELS_PATH}"
        try:
            data = context.transport.request(
                HttpRequest("GET", url, creds.headers(), timeout_ms=LIST_TIMEOUT_MS),
                context.cancel_event,
            )
        except (TransportError, OSError) as e:
            logger.warning("Could not list models from %s: %s", url, e)
            return [NO_MODELS_OPTION]

        options = format_model_options(parse_models(data))
        if not options:
            logger.warning("No chat models reported by %s", url)
            return [NO_MODELS_OPTION]
        return options

    # ── Execution ─────────────────────────────────────────────

    def execute(self, context: ExecutionContext) -> list[NodeItem]:
        creds = LmStudioCredentials.from_mapping(context.credentials)
        results: list[NodeItem] = []

        for index in range(len(context.items)):
            try:
                row = self._run_item(context, creds, index)
            except NodeError as e:
                e.item_index = index
                if not context.continue_on_fail:
                    logger.error("Item %d failed: %s", index, e.message)
                    raise
                logger.warning("Item %d failed, continuing: %s", index, e.message)
                context.publish("activity_log", {
                    "text": f"[LM Studio] item {index}: {e.message}",
                })
                results.append(NodeItem(json={"error": e.message}, paired_item=index))
                continue
            results.append(NodeItem(json=row, paired_item=index))

        return results

    def _run_item(
        self,
        context: ExecutionContext,
        creds: LmStudioCredentials,
        index: int,
    ) -> dict[str, Any]:
        request = self.read_request(context, index)
        if context.cancelled:
            raise translate_transport_error(
                TransportError("ABORT_ERR", "Execution was cancelled"), request.timeout,
            )

        url = f"{creds.base_url}{CHAT_PATH}"
        logger.debug("Item %d: POST %s model=%s structured=%s",
                     index, url, request.model, request.structured)
        http_request = HttpRequest(
            "POST",
            url,
            creds.headers(),
            body=build_chat_body(request),
            timeout_ms=max(1, round(request.timeout * 1000)) if request.timeout > 0 else 0,
        )
        try:
            data = context.transport.request(http_request, context.cancel_event)
        except (TransportError, OSError) as e:
            raise translate_transport_error(e, request.timeout) from e

        return map_chat_response(data, structured=request.structured)

    def read_request(self, context: ExecutionContext, index: int) -> ChatRequest:
        """Read and validate the form parameters for item *index*."""
        model = str(context.get_parameter("model_name", index) or "").strip()
        if not model:
            raise NodeParameterError("Model name is required", item_index=index)

        message = context.get_parameter("message", index)
        if message is None or str(message) == "":
            raise NodeParameterError("Message is required", item_index=index)

        temperature = _as_number(context.get_parameter("temperature", index, 1.0),
                                 "Temperature", index)
        if not 0.0 <= temperature <= 2.0:
            raise NodeParameterError(
                f"Temperature must be between 0 and 2, got {temperature:g}",
                item_index=index,
            )

        max_tokens: Optional[int] = None
        raw_max = context.get_parameter("max_tokens", index, None)
        if raw_max not in (None, ""):
            max_tokens = int(_as_number(raw_max, "Max Tokens", index))
            if max_tokens < 0:
                raise NodeParameterError(
                    f"Max Tokens must be a positive integer, got {max_tokens}",
                    item_index=index,
                )
            max_tokens = max_tokens or None

        raw_timeout = context.get_parameter("timeout", index, 0)
        timeout = _as_number(raw_timeout or 0, "Timeout", index)
        if timeout < 0:
            raise NodeParameterError(
                f"Timeout must be 0 or more seconds, got {timeout:g}",
                item_index=index,
            )

        return ChatRequest(
            model=model,
            message=str(message),
            temperature=temperature,
            max_tokens=max_tokens,
            schema=parse_json_schema(context.get_parameter("json_schema", index, "")),
            timeout=timeout,
        )

    # ── Parameter form ────────────────────────────────────────

    def get_config_schema(self) -> dict[str, Any]:
        return {
            "model_name": {
                "type": "options",
                "label": "Model Name",
                "load_options": "get_models",
                "allow_custom": True,
                "required": True,
                "default": "",
                "description": "The model identifier to use",
            },
            "message": {
                "type": "string",
                "label": "Message",
                "rows": 5,
                "required": True,
                "default": "",
                "description": "The user message to send to the model",
            },
            "json_schema": {
                "type": "json",
                "label": "JSON Schema",
                "default": "",
                "description": "Optional JSON schema for structured output. It is "
                               "wrapped in the response_format LM Studio expects.",
            },
            "temperature": {
                "type": "float",
                "label": "Temperature",
                "min": 0.0,
                "max": 2.0,
                "precision": 2,
                "default": 1.0,
            },
            "max_tokens": {
                "type": "int",
                "label": "Max Tokens",
                "min": 1,
                "default": None,
                "description": "Leave empty for model default.",
            },
            "timeout": {
                "type": "int",
                "label": "Timeout (seconds)",
                "min": 0,
                "default": 0,
                "description": "0 waits indefinitely.",
            },
        }


def _as_number(value: Any, label: str, index: int) -> float:
    if isinstance(value, bool):
        raise NodeParameterError(f"{label} must be a number", item_index=index)
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise NodeParameterError(
            f"{label} must be a number, got {value!r}", item_index=index,
        ) from e


Node = LmStudioMessageNode
