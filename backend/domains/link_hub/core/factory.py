"""
关联存储工厂

根据 LINK_HUB_STORE_BACKEND 选择存储后端:
- postgres: PostgresLinkStore（默认）
- memory: MemoryLinkStore（开发/测试）
"""

import logging
from typing import Optional

from domains.core.exceptions import ConfigurationError

from .config import get_link_hub_settings
from .store import LinkStore

logger = logging.getLogger(__name__)


def create_link_store(backend: Optional[str] = None, database_url: Optional[str] = None) -> LinkStore:
    """
    创建关联存储

    Args:
        backend: 存储后端，None 时读取配置
        database_url: PostgreSQL 连接 URL，None 时读取 DATABASE_URL

    Raises:
        ConfigurationError: 未知的存储后端
    """
    backend = (backend or get_link_hub_settings().store_backend).lower()

    if backend == "postgres":
        from .store import PostgresLinkStore
        logger.info("使用 PostgreSQL 关联存储")
        return PostgresLinkStore(database_url)

    if backend == "memory":
        from .memory_store import MemoryLinkStore
        logger.info("使用内存关联存储")
        return MemoryLinkStore()

    raise ConfigurationError(
        "LINK_HUB_STORE_BACKEND",
        f"未知的存储后端: {backend}，可选值: postgres, memory",
    )
