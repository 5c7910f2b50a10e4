"""Constants and enumerations for the workflow automation engine."""

from enum import Enum


class WorkflowStatus(str, Enum):
    """Lifecycle status of a workflow definition."""

    DRAFT = "Draft"
    ACTIVE = "Active"
    PAUSED = "Paused"
    COMPLETED = "Completed"
    ARCHIVED = "Archived"


class ExecutionStatus(str, Enum):
    """Status of a single workflow run."""

    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"


class NodeType(str, Enum):
    """Graph node kinds. Only START and END carry structural meaning."""

    START = "START"
    END = "END"
    TASK = "TASK"
    DECISION = "DECISION"
    SUBWORKFLOW = "SUBWORKFLOW"


class StepType(str, Enum):
    """Executable step kinds dispatched by the step executor."""

    INTEGRATION = "integration"
    TRANSFORMATION = "transformation"
    CONDITION = "condition"
    CUSTOM = "custom"


class Protocol(str, Enum):
    """Connector protocols known to the connector factory."""

    REST = "REST"
    SOAP = "SOAP"
    HTTP = "HTTP"
    WEBSOCKET = "WebSocket"


class ValidationCategory(str, Enum):
    """Distinguishes graph-shape failures from field/business-rule failures."""

    STRUCTURAL = "structural"
    BUSINESS_RULE = "business_rule"


class ErrorCode(str, Enum):
    """Machine-readable error codes carried by every AutomationError."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    CONFLICT_ERROR = "CONFLICT_ERROR"
    STEP_EXECUTION_ERROR = "STEP_EXECUTION_ERROR"
    RESOURCE_NOT_FOUND_ERROR = "RESOURCE_NOT_FOUND_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


# Workflow limits
WORKFLOW_NAME_MAX_LENGTH = 255
WORKFLOW_NAME_PATTERN = r"^[a-zA-Z0-9\s\-_.,!?()]{1,255}$"
MIN_WORKFLOW_NODES = 2
MAX_WORKFLOW_NODES = 100
MAX_SUBWORKFLOW_DEPTH = 5

# Webhook events accepted by WebSocket connectors
WEBHOOK_EVENT_TYPES = frozenset({"data", "status"})

# Execution state machine: status -> statuses it may move to
EXECUTION_TRANSITIONS: dict[ExecutionStatus, frozenset] = {
    ExecutionStatus.PENDING: frozenset({ExecutionStatus.RUNNING, ExecutionStatus.FAILED}),
    ExecutionStatus.RUNNING: frozenset(
        {ExecutionStatus.RUNNING, ExecutionStatus.COMPLETED, ExecutionStatus.FAILED}
    ),
    ExecutionStatus.COMPLETED: frozenset(),
    ExecutionStatus.FAILED: frozenset(),
}

DEFAULT_JSON_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}
