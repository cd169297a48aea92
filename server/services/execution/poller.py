"""Scheduled trigger poller.

Every ``schedule_poll_interval`` seconds, scans active schedule workflows
and hands the due ones to the trigger router. The poller only decides
whether a workflow should fire now; it never executes workflow logic.

Due checks:
- schedule.interval: never run, or ``now - lastRunAt >= interval``
- schedule.cron (coarse): never run, or the minute or hour of now differs
  from lastRunAt
- schedule.cron (expression): the cron expression has a fire time after
  lastRunAt and at or before now
"""

from datetime import datetime
from typing import Any, Dict, Optional, TYPE_CHECKING

from constants import CRON_TRIGGER, INTERVAL_TRIGGER
from core.config import Settings
from core.logging import get_logger
from services import scheduler
from .delay import parse_duration
from .models import ensure_utc, utcnow
from .router import TriggerRouter

if TYPE_CHECKING:
    from core.database import Database

logger = get_logger(__name__)

POLL_JOB_ID = "automation-schedule-poll"
DEFAULT_INTERVAL = "1 hour"


class SchedulePoller:
    """Periodic due-check for schedule.cron and schedule.interval workflows."""

    def __init__(self, database: "Database", router: TriggerRouter, settings: Settings):
        self.database = database
        self.router = router
        self.poll_interval = settings.schedule_poll_interval
        self.cron_evaluation = settings.cron_evaluation

    def start(self) -> None:
        scheduler.register_interval_job(POLL_JOB_ID, self.poll_interval, self.poll_once)
        scheduler.start_scheduler()
        logger.info("Schedule poller started", interval=self.poll_interval,
                   cron_evaluation=self.cron_evaluation)

    def stop(self) -> None:
        scheduler.remove_job(POLL_JOB_ID)
        scheduler.shutdown_scheduler()
        logger.info("Schedule poller stopped")

    async def poll_once(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Check every schedule workflow once; returns checked/executed counts."""
        now = ensure_utc(now) or utcnow()
        workflows = await self.database.find_schedule_workflows()

        executed = 0
        for workflow in workflows:
            try:
                if not self.is_due(workflow, now):
                    continue

                config = workflow.trigger_config or {}
                event_data = {
                    "workspaceId": workflow.workspace_id,
                    "timestamp": now.isoformat(),
                    "scheduleId": workflow.id,
                    "cronExpression": config.get("cronExpression"),
                    "interval": config.get("interval"),
                }
                await self.router.route(workflow.trigger, workflow.workspace_id, event_data)
                executed += 1
            except Exception as e:
                logger.error("Schedule check failed", workflow_id=workflow.id, error=str(e))

        if executed:
            logger.info("Schedule poll complete", checked=len(workflows), executed=executed)
        return {"checked": len(workflows), "executed": executed}

    def is_due(self, workflow: Any, now: datetime) -> bool:
        last_run_at = ensure_utc(workflow.last_run_at)
        config = workflow.trigger_config or {}

        if workflow.trigger == INTERVAL_TRIGGER:
            if last_run_at is None:
                return True
            interval = parse_duration(config.get("interval") or DEFAULT_INTERVAL)
            return now - last_run_at >= interval

        if workflow.trigger == CRON_TRIGGER:
            if last_run_at is None:
                return True
            expression = config.get("cronExpression")
            if self.cron_evaluation == "expression" and expression:
                try:
                    fire_time = scheduler.next_cron_fire_time(expression, last_run_at)
                    return fire_time is not None and fire_time <= now
                except ValueError as e:
                    logger.warning("Invalid cron expression, using coarse check",
                                  workflow_id=workflow.id, expression=expression, error=str(e))
            return now.minute != last_run_at.minute or now.hour != last_run_at.hour

        return False
