"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from services.execution.clients import IntegrationClients
from services.execution.delay import AsyncioSleeper
from services.execution.dispatcher import ActionDispatcher
from services.execution.executor import GraphExecutor
from services.execution.launcher import LocalRunLauncher, WorkspaceLimiter
from services.execution.poller import SchedulePoller
from services.execution.router import TriggerRouter
from services.handlers import build_default_registry
from services.status_broadcaster import StatusBroadcaster
from services.temporal import AutomationActivities, TemporalClientWrapper, TemporalRunLauncher


def _engine_mode(settings: Settings) -> str:
    return "temporal" if settings.temporal_enabled else "local"


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Database
    database = providers.Singleton(
        Database,
        settings=settings
    )

    # Live status channels
    broadcaster = providers.Singleton(
        StatusBroadcaster,
    )

    # Per-workspace integration clients
    clients = providers.Singleton(
        IntegrationClients,
        ttl=settings.provided.integration_client_ttl,
        timeout=settings.provided.http_timeout,
    )

    # Action dispatch
    registry = providers.Singleton(
        build_default_registry,
        settings=settings,
        broadcaster=broadcaster
    )

    dispatcher = providers.Singleton(
        ActionDispatcher,
        registry=registry
    )

    # Execution engine
    sleeper = providers.Singleton(
        AsyncioSleeper,
    )

    executor = providers.Singleton(
        GraphExecutor,
        store=database,
        publisher=broadcaster,
        dispatcher=dispatcher,
        sleeper=sleeper,
        max_node_visits=settings.provided.max_node_visits,
        clients=clients
    )

    limiter = providers.Singleton(
        WorkspaceLimiter,
        limit=settings.provided.workspace_concurrency_limit,
    )

    # Temporal
    temporal_client = providers.Singleton(
        TemporalClientWrapper,
        server_address=settings.provided.temporal_server_address,
        namespace=settings.provided.temporal_namespace,
    )

    temporal_activities = providers.Singleton(
        AutomationActivities,
        database=database,
        broadcaster=broadcaster,
        dispatcher=dispatcher,
        clients=clients
    )

    launcher = providers.Selector(
        providers.Callable(_engine_mode, settings),
        local=providers.Singleton(
            LocalRunLauncher,
            executor=executor,
            limiter=limiter
        ),
        temporal=providers.Singleton(
            TemporalRunLauncher,
            client=temporal_client,
            limiter=limiter,
            task_queue=settings.provided.temporal_task_queue,
            max_node_visits=settings.provided.max_node_visits,
        ),
    )

    router = providers.Singleton(
        TriggerRouter,
        database=database,
        launcher=launcher
    )

    poller = providers.Singleton(
        SchedulePoller,
        database=database,
        router=router,
        settings=settings
    )


# Global container instance
container = Container()
