"""Temporal durable execution for automation runs.

When TEMPORAL_ENABLED=true:
- Each run is an AutomationRunWorkflow executing the graph executor
- Database writes, status broadcasts and action handlers run as activities
- Delay nodes are durable Temporal timers that survive restarts
- The API process hosts a worker polling the automation task queue

When TEMPORAL_ENABLED=false (default):
- Runs execute in-process via LocalRunLauncher with asyncio timers
"""

from .client import TemporalClientWrapper
from .activities import AutomationActivities
from .workflow import AutomationRunWorkflow, TemporalSleeper
from .worker import TemporalWorkerManager
from .launcher import TemporalRunLauncher

__all__ = [
    "TemporalClientWrapper",
    "AutomationActivities",
    "AutomationRunWorkflow",
    "TemporalSleeper",
    "TemporalWorkerManager",
    "TemporalRunLauncher",
]
