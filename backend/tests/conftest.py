"""Shared pytest fixtures for the Workflow Automation Engine test suite.

Provides:
- In-memory async SQLite database for the SQL store
- Engine components wired to an in-memory store
- Workflow factory producing valid START -> task -> END graphs
- httpx MockTransport helpers for connector tests
"""

import os
from typing import AsyncGenerator
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

# Override settings BEFORE any app imports
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("CONNECTOR_VERIFY_CONNECTIVITY", "false")

from db.base import Base  # noqa: E402
from db.database import create_session_factory  # noqa: E402
from integrations.registry import ConnectorRegistry  # noqa: E402
from workflow.compiler import WorkflowCompiler  # noqa: E402
from workflow.context import ExecutionContext  # noqa: E402
from workflow.engine import ExecutionEngine  # noqa: E402
from workflow.models import Workflow  # noqa: E402
from workflow.optimizer import WorkflowOptimizer  # noqa: E402
from workflow.step_executor import StepExecutor  # noqa: E402
from workflow.store import InMemoryWorkflowStore  # noqa: E402
from workflow.validator import WorkflowValidator  # noqa: E402

CREATED_AT = "2024-01-01T00:00:00+00:00"
UPDATED_AT = "2024-01-02T00:00:00+00:00"


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


# ---------------------------------------------------------------------------
# Engine component fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def validator() -> WorkflowValidator:
    return WorkflowValidator()


@pytest.fixture
def store() -> InMemoryWorkflowStore:
    return InMemoryWorkflowStore()


@pytest.fixture
def context(validator, store) -> ExecutionContext:
    return ExecutionContext(validator, store)


@pytest.fixture
def optimizer(validator, context) -> WorkflowOptimizer:
    return WorkflowOptimizer(validator, context)


@pytest.fixture
def compiler(validator, optimizer, context) -> WorkflowCompiler:
    return WorkflowCompiler(validator, optimizer, context)


@pytest.fixture
def registry() -> ConnectorRegistry:
    return ConnectorRegistry()


@pytest.fixture
def step_executor(context, validator, registry) -> StepExecutor:
    return StepExecutor(context, validator, registry)


@pytest.fixture
def engine(context, validator, optimizer, compiler, step_executor) -> ExecutionEngine:
    return ExecutionEngine(context, validator, optimizer, compiler, step_executor)


# ---------------------------------------------------------------------------
# Test data fixtures
# ---------------------------------------------------------------------------

def node(node_id: str, node_type: str = "TASK", **extra) -> dict:
    return {"id": node_id, "type": node_type, **extra}


def edge(from_node: str, to_node, condition=None) -> dict:
    return {"from": from_node, "to": to_node, "condition": condition}


@pytest.fixture
def workflow_factory():
    """Build a Workflow from dict parts; defaults to START -> fetch -> END."""

    def _make(nodes=None, transitions=None, **overrides) -> Workflow:
        data = {
            "id": str(uuid4()),
            "name": "Order Sync",
            "description": "Sync orders from the shop into the CRM",
            "status": "Draft",
            "createdAt": CREATED_AT,
            "updatedAt": UPDATED_AT,
            "version": 1,
            "nodes": nodes if nodes is not None else [
                node("start", "START"),
                node("fetch", step={"type": "custom"}),
                node("end", "END"),
            ],
            "transitions": transitions if transitions is not None else [
                edge("start", "fetch"),
                edge("fetch", "end"),
            ],
        }
        data.update(overrides)
        return Workflow.from_dict(data)

    return _make


@pytest_asyncio.fixture
async def stored_workflow(store, workflow_factory) -> Workflow:
    workflow = workflow_factory()
    await store.save_workflow(workflow)
    return workflow


# ---------------------------------------------------------------------------
# HTTP mocking
# ---------------------------------------------------------------------------

class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, responder):
        self.requests: list[httpx.Request] = []

        def _handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return responder(request)

        super().__init__(_handler)


@pytest.fixture
def json_transport():
    """Transport answering every request with 200 and a JSON echo of the call."""
    return RecordingTransport(
        lambda request: httpx.Response(
            200,
            json={"method": request.method, "path": request.url.path},
        )
    )
