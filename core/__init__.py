from .events import EventBus
from .config import Config
from .errors import (
    NodeError, NodeOperationError, NodeApiError, NodeParameterError,
    InvalidSchemaError, InvalidResponseStructureError, NoContentError,
    ContentParseError, RequestFailedError, RequestTimedOutError,
    TransportError,
)
from .node_base import WorkflowNode, NodeItem, ModelInfo, ModelOption
from .transport import HttpRequest, HttpTransport, UrllibTransport
from .context import ExecutionContext
from .node_manager import NodeManager
