from dependency_injector import containers, providers

from volsync.config import get_settings
from volsync.providers.volumetrica.client import VolumetricaClient
from volsync.services.admin_action_service import AdminActionService
from volsync.services.projection_query_service import ProjectionQueryService
from volsync.services.reconciliation_service import ReconciliationService
from volsync.services.webhook_service import WebhookService


class ConfigModule(containers.DeclarativeContainer):
    """Application configuration."""

    config = providers.Singleton(get_settings)


class UpstreamModule(containers.DeclarativeContainer):
    """Clients for external systems."""

    config = providers.DependenciesContainer()

    volumetrica_client = providers.Singleton(
        VolumetricaClient, config=config.config.provided.volumetrica_api
    )


class ServiceModule(containers.DeclarativeContainer):
    """
    Service layer dependencies.

    Services need a request-scoped session, so routers receive the factory
    provider and call it with the session from ``get_db``.
    """

    config = providers.DependenciesContainer()
    upstream = providers.DependenciesContainer()

    webhook_service = providers.Factory(WebhookService, settings=config.config)
    reconciliation_service = providers.Factory(
        ReconciliationService, client=upstream.volumetrica_client
    )
    admin_action_service = providers.Factory(
        AdminActionService, client=upstream.volumetrica_client
    )
    projection_query_service = providers.Factory(ProjectionQueryService)


class Container(containers.DeclarativeContainer):
    """Application container."""

    wiring_config = containers.WiringConfiguration(
        modules=[
            "volsync.routers.webhook_router",
            "volsync.routers.reconcile_router",
            "volsync.routers.admin_router",
        ],
    )

    config = providers.Container(ConfigModule)
    upstream = providers.Container(UpstreamModule, config=config)
    services = providers.Container(ServiceModule, config=config, upstream=upstream)
