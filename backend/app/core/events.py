"""Application lifecycle event handlers.

使用 ServiceRegistry 统一管理服务的创建和关闭。
"""

from typing import Callable

from domains.core import get_service_registry, register_core_services
from domains.core.logging import get_logger
from domains.link_hub.core import get_link_hub_settings

logger = get_logger(__name__)


def create_start_handler() -> Callable:
    """Create startup event handler."""

    async def start_app() -> None:
        logger.info("api_starting", component="api")

        try:
            registry = register_core_services()
            registry.get("link_service")

            settings = get_link_hub_settings()
            logger.info(
                "services_initialized",
                component="registry",
                services=registry.initialized_services,
                store_backend=settings.store_backend,
                summaries_enabled=settings.summaries_enabled,
            )
        except Exception as e:
            logger.error("service_initialization_error", component="registry", error=str(e))

        logger.info("api_started", component="api", status="success")

    return start_app


def create_stop_handler() -> Callable:
    """Create shutdown event handler."""

    async def stop_app() -> None:
        logger.info("api_stopping", component="api")

        try:
            registry = get_service_registry()
            await registry.shutdown()
        except Exception as e:
            logger.warning("service_registry_stop_error", component="registry", error=str(e))

        logger.info("api_stopped", component="api", status="success")

    return stop_app
