"""Async database service with SQLModel and SQLAlchemy 2.0.

Read helpers log and return None/[] on failure. Writes used by the execution
engine log and re-raise, so a persistence failure fails the run instead of
being silently dropped.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select, col

from constants import SCHEDULE_TRIGGERS
from core.config import Settings
from core.logging import get_logger
from models.database import Workflow, WorkflowRun, WorkflowRunStep
from services.execution.models import RunStatus, StepStatus, utcnow

logger = get_logger(__name__)

TERMINAL_RUN_STATUSES = {s.value for s in RunStatus if s.is_terminal}
TERMINAL_STEP_STATUSES = {StepStatus.COMPLETED.value, StepStatus.FAILED.value}


class Database:
    """Async database service with SQLModel."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            logging.getLogger("aiosqlite").setLevel(logging.WARNING)
            logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

            engine_kwargs: Dict[str, Any] = {"echo": self.settings.database_echo}
            if not self.settings.is_sqlite:
                engine_kwargs["pool_size"] = self.settings.database_pool_size
                engine_kwargs["max_overflow"] = self.settings.database_max_overflow

            self.engine = create_async_engine(self.settings.database_url, **engine_kwargs)

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully")

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    # ============================================================================
    # Workflows
    # ============================================================================

    async def save_workflow(self, workflow: Workflow) -> Workflow:
        """Insert or update a workflow definition."""
        try:
            async with self.get_session() as session:
                workflow.updated_at = utcnow()
                merged = await session.merge(workflow)
                await session.commit()
                return merged

        except Exception as e:
            logger.error("Failed to save workflow", workflow_id=workflow.id, error=str(e))
            raise

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        """Get workflow by ID."""
        try:
            async with self.get_session() as session:
                stmt = select(Workflow).where(Workflow.id == workflow_id)
                result = await session.execute(stmt)
                return result.scalar_one_or_none()

        except Exception as e:
            logger.error("Failed to get workflow", workflow_id=workflow_id, error=str(e))
            return None

    async def find_active_workflows(self, trigger: str, workspace_id: str) -> List[Workflow]:
        """Active, published workflows of a workspace listening to a trigger."""
        try:
            async with self.get_session() as session:
                stmt = (
                    select(Workflow)
                    .where(Workflow.trigger == trigger)
                    .where(Workflow.workspace_id == workspace_id)
                    .where(col(Workflow.is_active).is_(True))
                    .where(col(Workflow.is_draft).is_(False))
                    .order_by(col(Workflow.created_at))
                )
                result = await session.execute(stmt)
                return list(result.scalars().all())

        except Exception as e:
            logger.error("Failed to find workflows", trigger=trigger,
                        workspace_id=workspace_id, error=str(e))
            return []

    async def find_schedule_workflows(self) -> List[Workflow]:
        """Active, published workflows with a time-based trigger."""
        try:
            async with self.get_session() as session:
                stmt = (
                    select(Workflow)
                    .where(col(Workflow.trigger).in_(sorted(SCHEDULE_TRIGGERS)))
                    .where(col(Workflow.is_active).is_(True))
                    .where(col(Workflow.is_draft).is_(False))
                )
                result = await session.execute(stmt)
                return list(result.scalars().all())

        except Exception as e:
            logger.error("Failed to find schedule workflows", error=str(e))
            return []

    async def increment_workflow_run_count(self, workflow_id: str,
                                           last_error: Optional[str] = None) -> None:
        """Bump run_count, stamp last_run_at and set (or clear) last_error."""
        try:
            async with self.get_session() as session:
                stmt = (
                    update(Workflow)
                    .where(col(Workflow.id) == workflow_id)
                    .values(
                        run_count=col(Workflow.run_count) + 1,
                        last_run_at=utcnow(),
                        last_error=last_error,
                    )
                )
                await session.execute(stmt)
                await session.commit()

        except Exception as e:
            logger.error("Failed to update workflow counters", workflow_id=workflow_id, error=str(e))
            raise

    # ============================================================================
    # Runs
    # ============================================================================

    async def create_run(self, workflow_id: str, workspace_id: str, trigger_event: str,
                         trigger_data: Dict[str, Any], total_steps: int) -> str:
        """Create a running WorkflowRun and return its id."""
        try:
            async with self.get_session() as session:
                run = WorkflowRun(
                    workflow_id=workflow_id,
                    workspace_id=workspace_id,
                    trigger_event=trigger_event,
                    trigger_data=trigger_data,
                    status=RunStatus.RUNNING.value,
                    total_steps=total_steps,
                    started_at=utcnow(),
                )
                session.add(run)
                await session.commit()
                return run.id

        except Exception as e:
            logger.error("Failed to create run", workflow_id=workflow_id, error=str(e))
            raise

    async def update_run(self, run_id: str, **fields: Any) -> bool:
        """Update a run. Returns False when the run is missing or already terminal."""
        try:
            async with self.get_session() as session:
                run = await session.get(WorkflowRun, run_id)
                if run is None:
                    logger.warning("Run not found for update", run_id=run_id)
                    return False
                if run.status in TERMINAL_RUN_STATUSES:
                    logger.info("Run already terminal, update ignored",
                               run_id=run_id, status=run.status)
                    return False

                for name, value in fields.items():
                    setattr(run, name, value)
                if run.status in TERMINAL_RUN_STATUSES and "completed_at" not in fields:
                    run.completed_at = utcnow()

                await session.commit()
                return True

        except Exception as e:
            logger.error("Failed to update run", run_id=run_id, error=str(e))
            raise

    async def cancel_run(self, run_id: str) -> Optional[bool]:
        """Mark a running run cancelled.

        Returns None for unknown runs, False when the run already finished.
        """
        run = await self.get_run(run_id)
        if run is None:
            return None
        return await self.update_run(run_id, status=RunStatus.CANCELLED.value)

    async def get_run(self, run_id: str) -> Optional[WorkflowRun]:
        """Get run by ID."""
        try:
            async with self.get_session() as session:
                return await session.get(WorkflowRun, run_id)

        except Exception as e:
            logger.error("Failed to get run", run_id=run_id, error=str(e))
            return None

    async def get_run_status(self, run_id: str) -> Optional[str]:
        run = await self.get_run(run_id)
        return run.status if run else None

    async def list_runs(self, workflow_id: str, limit: int = 50) -> List[WorkflowRun]:
        """Most recent runs of a workflow."""
        try:
            async with self.get_session() as session:
                stmt = (
                    select(WorkflowRun)
                    .where(WorkflowRun.workflow_id == workflow_id)
                    .order_by(col(WorkflowRun.created_at).desc())
                    .limit(limit)
                )
                result = await session.execute(stmt)
                return list(result.scalars().all())

        except Exception as e:
            logger.error("Failed to list runs", workflow_id=workflow_id, error=str(e))
            return []

    # ============================================================================
    # Steps
    # ============================================================================

    async def create_step(self, run_id: str, node_id: str, action: str,
                          action_config: Dict[str, Any], input: Dict[str, Any]) -> str:
        """Append a running step to a run and return its id."""
        try:
            async with self.get_session() as session:
                step = WorkflowRunStep(
                    run_id=run_id,
                    node_id=node_id,
                    action=action,
                    action_config=action_config,
                    status=StepStatus.RUNNING.value,
                    input=input,
                    started_at=utcnow(),
                )
                session.add(step)
                await session.commit()
                return step.id

        except Exception as e:
            logger.error("Failed to create step", run_id=run_id, node_id=node_id, error=str(e))
            raise

    async def update_step(self, step_id: str, **fields: Any) -> None:
        """Update a step; terminal statuses get completed_at stamped."""
        try:
            async with self.get_session() as session:
                step = await session.get(WorkflowRunStep, step_id)
                if step is None:
                    logger.warning("Step not found for update", step_id=step_id)
                    return

                for name, value in fields.items():
                    setattr(step, name, value)
                if step.status in TERMINAL_STEP_STATUSES and "completed_at" not in fields:
                    step.completed_at = utcnow()

                await session.commit()

        except Exception as e:
            logger.error("Failed to update step", step_id=step_id, error=str(e))
            raise

    async def get_steps(self, run_id: str) -> List[WorkflowRunStep]:
        """Steps of a run in visit order."""
        try:
            async with self.get_session() as session:
                stmt = (
                    select(WorkflowRunStep)
                    .where(WorkflowRunStep.run_id == run_id)
                    .order_by(col(WorkflowRunStep.started_at))
                )
                result = await session.execute(stmt)
                return list(result.scalars().all())

        except Exception as e:
            logger.error("Failed to get steps", run_id=run_id, error=str(e))
            return []
