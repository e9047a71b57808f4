"""
Link Hub 核心组件

- 实体类型注册表
- 关联数据模型
- 关联存储（PostgreSQL / 内存）
- 实体摘要
"""

from .config import LinkHubSettings, get_link_hub_settings
from .factory import create_link_store
from .memory_store import MemoryLinkStore
from .models import (
    BidirectionalLinks,
    EntityConnections,
    GraphData,
    GraphEdge,
    GraphNode,
    GraphStats,
    Link,
    LinkCreate,
    LinkFilters,
    LinkPage,
    Pagination,
)
from .registry import (
    EntityType,
    EntityTypeDescriptor,
    EntityTypeRegistry,
    create_default_registry,
    get_entity_registry,
)
from .store import LinkStore, PostgresLinkStore
from .summaries import (
    EntitySummaryProvider,
    NullSummaryProvider,
    SqlSummaryProvider,
    StaticSummaryProvider,
    SummaryResolver,
    create_summary_provider,
)

__all__ = [
    # 配置
    "LinkHubSettings",
    "get_link_hub_settings",
    # 注册表
    "EntityType",
    "EntityTypeDescriptor",
    "EntityTypeRegistry",
    "create_default_registry",
    "get_entity_registry",
    # 模型
    "Link",
    "LinkCreate",
    "LinkFilters",
    "LinkPage",
    "Pagination",
    "BidirectionalLinks",
    "EntityConnections",
    "GraphNode",
    "GraphEdge",
    "GraphStats",
    "GraphData",
    # 存储
    "LinkStore",
    "PostgresLinkStore",
    "MemoryLinkStore",
    "create_link_store",
    # 摘要
    "EntitySummaryProvider",
    "SqlSummaryProvider",
    "StaticSummaryProvider",
    "NullSummaryProvider",
    "SummaryResolver",
    "create_summary_provider",
]
