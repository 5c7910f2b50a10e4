"""Exception taxonomy and error sink for the workflow automation engine."""

from typing import Any, Optional

import structlog

from core.constants import ErrorCode, ValidationCategory

logger = structlog.get_logger(__name__)


class AutomationError(Exception):
    """Base exception for the workflow automation engine."""

    code: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        """Initialize exception with message and optional structured details.

        Args:
            message: Human-readable error message
            details: Extra context (ids, field names) surfaced to callers
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(AutomationError):
    """A workflow broke a structural or business rule."""

    code = ErrorCode.VALIDATION_ERROR
    status_code = 422

    def __init__(
        self,
        message: str = "Validation failed",
        category: ValidationCategory = ValidationCategory.BUSINESS_RULE,
        details: Optional[dict[str, Any]] = None,
    ):
        self.category = category
        super().__init__(message, details)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["category"] = self.category.value
        return data


class ConfigurationError(AutomationError):
    """Missing or invalid connector or mapping configuration."""

    code = ErrorCode.CONFIGURATION_ERROR
    status_code = 400


class ConflictError(ConfigurationError):
    """A resource with the same key is already registered."""

    code = ErrorCode.CONFLICT_ERROR
    status_code = 409


class ExecutionError(AutomationError):
    """A step failed during a workflow run."""

    code = ErrorCode.STEP_EXECUTION_ERROR
    status_code = 500

    def __init__(
        self,
        message: str = "Step execution failed",
        node_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.node_id = node_id
        super().__init__(message, details)


class NotFoundError(AutomationError):
    """Referenced workflow, execution, version, connector or step does not exist."""

    code = ErrorCode.RESOURCE_NOT_FOUND_ERROR
    status_code = 404

    def __init__(self, message: str = "Resource not found", details: Optional[dict[str, Any]] = None):
        super().__init__(message, details)


class InternalError(AutomationError):
    """Unexpected or uncategorised failure."""

    code = ErrorCode.INTERNAL_SERVER_ERROR
    status_code = 500


def handle_error(error: BaseException, reraise: bool = False) -> None:
    """Log an error uniformly and optionally re-raise it.

    Args:
        error: The exception caught at a boundary
        reraise: Whether to raise the same exception after logging
    """
    if isinstance(error, AutomationError):
        logger.error(
            "Automation error",
            error_code=error.code.value,
            message=error.message,
            details=error.details,
            error_type=type(error).__name__,
        )
    else:
        logger.error(
            "Unhandled error",
            error_code=ErrorCode.INTERNAL_SERVER_ERROR.value,
            message=str(error),
            error_type=type(error).__name__,
        )
    if reraise:
        raise error
