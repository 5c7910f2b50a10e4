"""Typed step definitions, one variant per step type.

A node's executable payload is one of these models, selected by the
``type`` discriminator:

    {"type": "integration", "protocol": "REST",
     "request": {"method": "GET", "endpoint": "/users/{{ variables.user_id }}"},
     "output_variable": "user"}
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from core.constants import Protocol


class _StepBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    output_variable: Optional[str] = None


class IntegrationStep(_StepBase):
    """Call the registered connector for ``protocol`` with ``request``."""

    type: Literal["integration"] = "integration"
    protocol: Protocol
    request: dict[str, Any] = Field(default_factory=dict)


class TransformationStep(_StepBase):
    """Reshape variables with a field mapping or a JSON rule tree."""

    type: Literal["transformation"] = "transformation"
    source: Optional[str] = None
    mapping: Optional[dict[str, Any]] = None
    logic: Optional[Union[str, dict[str, Any]]] = None

    @model_validator(mode="after")
    def _exactly_one_rule(self) -> "TransformationStep":
        if (self.mapping is None) == (self.logic is None):
            raise ValueError("transformation step needs exactly one of 'mapping' or 'logic'")
        return self


class ConditionStep(_StepBase):
    """Evaluate an expression and record which branch was taken."""

    type: Literal["condition"] = "condition"
    expression: str


class CustomStep(_StepBase):
    """Run a handler registered on the step executor. No handler is a no-op."""

    type: Literal["custom"] = "custom"
    handler: Optional[str] = None
    config: dict[str, Any] = Field(default_factory=dict)


StepDefinition = Annotated[
    Union[IntegrationStep, TransformationStep, ConditionStep, CustomStep],
    Field(discriminator="type"),
]

_step_adapter: TypeAdapter = TypeAdapter(StepDefinition)


def parse_step(data: Any) -> StepDefinition:
    """Validate a raw dict (or pass through a model) as a step definition."""
    if isinstance(data, (IntegrationStep, TransformationStep, ConditionStep, CustomStep)):
        return data
    return _step_adapter.validate_python(data)
