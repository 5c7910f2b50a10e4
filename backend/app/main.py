"""Workflow Automation Engine - application wiring.

``create_app()`` is the composition root: it builds one instance of each
component and hands the shared ones (store, context, registry) to the
rest. Use ``lifespan()`` to bracket a session of work:

    async with lifespan(create_app()) as app:
        workflow = await app.workflow_service.create_workflow({...})
        result = await app.workflow_service.execute_workflow(workflow.id)
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from app.config import Settings, get_settings
from core.logging_config import setup_logging
from db.database import close_db, create_db_engine, create_session_factory, init_db
from db.repository import SqlWorkflowStore
from integrations.data_mapper import DataMapper
from integrations.factory import ConnectorFactory
from integrations.registry import ConnectorRegistry
from services.workflow_service import WorkflowService
from workflow.compiler import WorkflowCompiler
from workflow.context import ExecutionContext
from workflow.engine import ExecutionEngine
from workflow.optimizer import WorkflowOptimizer
from workflow.step_executor import StepExecutor
from workflow.store import InMemoryWorkflowStore, WorkflowStore
from workflow.validator import WorkflowValidator

logger = structlog.get_logger(__name__)


@dataclass
class AutomationApp:
    """All engine components wired together."""

    settings: Settings
    store: WorkflowStore
    registry: ConnectorRegistry
    connector_factory: ConnectorFactory
    data_mapper: DataMapper
    validator: WorkflowValidator
    context: ExecutionContext
    optimizer: WorkflowOptimizer
    compiler: WorkflowCompiler
    step_executor: StepExecutor
    engine: ExecutionEngine
    workflow_service: WorkflowService
    db_engine: Optional[AsyncEngine] = None

    async def startup(self) -> None:
        if self.db_engine is not None:
            await init_db(self.db_engine)
        logger.info(
            "Application started",
            app=self.settings.APP_NAME,
            version=self.settings.APP_VERSION,
            environment=self.settings.ENVIRONMENT,
            store=type(self.store).__name__,
        )

    async def shutdown(self) -> None:
        await self.registry.close_all()
        if self.db_engine is not None:
            await close_db(self.db_engine)
        logger.info("Application shut down")


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[WorkflowStore] = None,
    registry: Optional[ConnectorRegistry] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AutomationApp:
    """Build the engine. Pass ``store``/``registry``/``transport`` to override defaults."""
    settings = settings or get_settings()
    setup_logging(settings)

    db_engine = None
    if store is None:
        if settings.uses_database:
            db_engine = create_db_engine(settings)
            store = SqlWorkflowStore(create_session_factory(db_engine))
        else:
            store = InMemoryWorkflowStore()

    registry = registry or ConnectorRegistry()
    data_mapper = DataMapper()
    validator = WorkflowValidator()
    context = ExecutionContext(validator, store)
    optimizer = WorkflowOptimizer(validator, context)
    compiler = WorkflowCompiler(validator, optimizer, context)
    step_executor = StepExecutor(context, validator, registry, data_mapper)
    engine = ExecutionEngine(context, validator, optimizer, compiler, step_executor)

    return AutomationApp(
        settings=settings,
        store=store,
        registry=registry,
        connector_factory=ConnectorFactory(registry, transport=transport),
        data_mapper=data_mapper,
        validator=validator,
        context=context,
        optimizer=optimizer,
        compiler=compiler,
        step_executor=step_executor,
        engine=engine,
        workflow_service=WorkflowService(store, context, engine, validator, settings),
        db_engine=db_engine,
    )


@asynccontextmanager
async def lifespan(app: AutomationApp) -> AsyncIterator[AutomationApp]:
    """Application startup and shutdown."""
    await app.startup()
    try:
        yield app
    finally:
        await app.shutdown()
