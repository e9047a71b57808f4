"""Dependency injection for FastAPI routes.

使用 ServiceRegistry 统一管理服务生命周期，测试时可通过
registry.set() 替换 link_store / summary_provider / link_service。
"""

from typing import Annotated

from fastapi import Depends, Path

from app.core.async_utils import run_sync
from domains.core import LinkNotFoundError, get_service_registry, register_core_services
from domains.link_hub.core import Link
from domains.link_hub.services import LinkService


def _ensure_services_registered():
    """确保服务已注册（延迟初始化）"""
    registry = get_service_registry()
    if "link_service" not in registry:
        register_core_services()
    return registry


def get_link_service() -> LinkService:
    """Get LinkService singleton instance."""
    registry = _ensure_services_registered()
    return registry.get("link_service")


async def get_link_or_404(
    link_id: Annotated[str, Path(description="关联 ID")],
    service: LinkService = Depends(get_link_service),
) -> Link:
    """获取关联，不存在时抛出 LinkNotFoundError（404）"""
    link = await run_sync(service.get_link, link_id)
    if link is None:
        raise LinkNotFoundError(link_id)
    return link


# Type hints for FastAPI Depends
LinkServiceDep = Annotated[LinkService, Depends(get_link_service)]
LinkDep = Annotated[Link, Depends(get_link_or_404)]
