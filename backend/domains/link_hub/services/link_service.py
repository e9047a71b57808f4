"""
关联业务服务

在存储层之上提供校验、分页、双向创建、端点摘要和图谱提取。
服务本身无状态，并发控制交给存储层。
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Union

from domains.core.exceptions import (
    BidirectionalLinkError,
    LinkNotFoundError,
    StorageError,
    ValidationError,
)

from ..core.config import LinkHubSettings, get_link_hub_settings
from ..core.models import (
    BidirectionalLinks,
    EntityConnections,
    GraphData,
    GraphStats,
    Link,
    LinkCreate,
    LinkFilters,
    LinkPage,
    Pagination,
    encode_metadata,
    validate_entity_id,
)
from ..core.registry import EntityType, EntityTypeRegistry, get_entity_registry
from ..core.store import LinkStore
from ..core.summaries import EntitySummaryProvider, NullSummaryProvider, SummaryResolver
from .graph_builder import GraphBuilder, expand_links

logger = logging.getLogger(__name__)


class LinkService:
    """关联业务服务"""

    def __init__(
        self,
        store: Optional[LinkStore] = None,
        summary_provider: Optional[EntitySummaryProvider] = None,
        registry: Optional[EntityTypeRegistry] = None,
        settings: Optional[LinkHubSettings] = None,
    ):
        self._store = store
        self.settings = settings or get_link_hub_settings()
        self.registry = registry or get_entity_registry()
        self.summaries = SummaryResolver(summary_provider or NullSummaryProvider())
        self.graph_builder = GraphBuilder(self.registry)
        # 工作线程复用，每个线程持有的数据库连接数量因此固定
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="link-connections")

    @property
    def store(self) -> LinkStore:
        """延迟获取 LinkStore 实例"""
        if self._store is None:
            from ..core.factory import create_link_store
            self._store = create_link_store()
        return self._store

    # ==================== 校验 ====================

    def _entity(self, entity_type: Union[EntityType, str], entity_id: str, prefix: str = "entity"):
        parsed = self.registry.parse(entity_type, field=f"{prefix}_type")
        return parsed, validate_entity_id(entity_id, f"{prefix}_id")

    def _validate_create(self, data: LinkCreate) -> LinkCreate:
        source_type, source_id = self._entity(data.source_type, data.source_id, "source")
        target_type, target_id = self._entity(data.target_type, data.target_id, "target")
        return LinkCreate(
            source_type=source_type,
            source_id=source_id,
            target_type=target_type,
            target_id=target_id,
            metadata=encode_metadata(data.metadata),
        )

    def _validate_filters(self, filters: Optional[LinkFilters]) -> LinkFilters:
        if filters is None:
            return LinkFilters()
        return LinkFilters(
            source_type=(
                self.registry.parse(filters.source_type, field="source_type")
                if filters.source_type is not None else None
            ),
            source_id=filters.source_id,
            target_type=(
                self.registry.parse(filters.target_type, field="target_type")
                if filters.target_type is not None else None
            ),
            target_id=filters.target_id,
        )

    def _validate_limit(self, limit: int, field: str = "limit") -> int:
        if not isinstance(limit, int) or isinstance(limit, bool) or not 1 <= limit <= self.settings.max_page_size:
            raise ValidationError(
                f"{field} 必须在 1 到 {self.settings.max_page_size} 之间",
                field=field,
            )
        return limit

    # ==================== 关联管理 ====================

    def list_links(
        self,
        filters: Optional[LinkFilters] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> LinkPage:
        """
        分页查询关联

        total 为精确计数，has_next 由 page * limit < total 得出。
        """
        limit = self._validate_limit(self.settings.default_page_size if limit is None else limit)
        if not isinstance(page, int) or isinstance(page, bool) or page < 1:
            raise ValidationError("page 必须大于等于 1", field="page")

        filters = self._validate_filters(filters)
        links = self.store.find_many(filters, skip=(page - 1) * limit, take=limit)
        total = self.store.count(filters)
        self.summaries.attach(links)

        return LinkPage(
            links=links,
            total=total,
            pagination=Pagination.create(page=page, limit=limit, total=total),
        )

    def get_link(self, link_id: str) -> Optional[Link]:
        """获取单个关联，不存在返回 None"""
        link = self.store.find_by_id(link_id)
        if link is not None:
            self.summaries.attach([link])
        return link

    def create_link(self, data: LinkCreate) -> Link:
        """创建关联，不做去重"""
        link = self.store.create(self._validate_create(data))
        logger.info(f"关联已创建: {link.source_key} -> {link.target_key} ({link.id})")
        return link

    def delete_link(self, link_id: str) -> None:
        """删除关联，不存在时抛出 LinkNotFoundError"""
        if self.store.find_by_id(link_id) is None:
            raise LinkNotFoundError(link_id)
        self.store.delete(link_id)
        logger.info(f"关联已删除: {link_id}")

    def create_bidirectional_link(self, data: LinkCreate) -> BidirectionalLinks:
        """
        创建一对互为镜像的关联

        反向关联创建失败时删除已创建的正向关联并抛出 StorageError；
        若删除也失败，抛出带有正向关联 ID 的 BidirectionalLinkError。
        两条关联创建后彼此独立，删除其一不影响另一条。
        """
        validated = self._validate_create(data)
        forward = self.store.create(validated)

        try:
            reverse = self.store.create(validated.reversed())
        except Exception as e:
            logger.warning(f"反向关联创建失败，回滚正向关联: {forward.id}, {e}")
            try:
                self.store.delete(forward.id)
            except Exception as rollback_error:
                logger.error(f"回滚正向关联失败: {forward.id}, {rollback_error}")
                raise BidirectionalLinkError(
                    forward.id,
                    f"反向关联创建失败且正向关联回滚失败: {forward.id}",
                    cause=e,
                ) from rollback_error
            raise StorageError(
                "反向关联创建失败，正向关联已回滚",
                details={"forward_id": forward.id, "rolled_back": True},
                cause=e,
            ) from e

        logger.info(f"双向关联已创建: {forward.id} <-> {reverse.id}")
        return BidirectionalLinks(forward=forward, reverse=reverse)

    # ==================== 查询 ====================

    def get_backlinks(self, entity_type: Union[EntityType, str], entity_id: str) -> List[Link]:
        """指向实体的关联"""
        entity_type, entity_id = self._entity(entity_type, entity_id)
        return self.summaries.attach(self.store.get_backlinks(entity_type, entity_id))

    def get_outgoing(self, entity_type: Union[EntityType, str], entity_id: str) -> List[Link]:
        """从实体出发的关联"""
        entity_type, entity_id = self._entity(entity_type, entity_id)
        return self.summaries.attach(self.store.get_outgoing(entity_type, entity_id))

    def search_links(self, query: str, limit: Optional[int] = None) -> List[Link]:
        """按元数据子串搜索（区分大小写）"""
        if not isinstance(query, str) or query == "":
            raise ValidationError("搜索关键词不能为空", field="query")
        limit = self._validate_limit(self.settings.search_default_limit if limit is None else limit)
        return self.summaries.attach(self.store.search(query, limit))

    def get_entity_connections(
        self,
        entity_type: Union[EntityType, str],
        entity_id: str,
    ) -> EntityConnections:
        """并发获取实体的反向链接和出链，两者不去重"""
        entity_type, entity_id = self._entity(entity_type, entity_id)

        backlinks_future = self._executor.submit(self.store.get_backlinks, entity_type, entity_id)
        outgoing_future = self._executor.submit(self.store.get_outgoing, entity_type, entity_id)
        backlinks = backlinks_future.result()
        outgoing = outgoing_future.result()

        self.summaries.attach(backlinks + outgoing)
        return EntityConnections(backlinks=backlinks, outgoing=outgoing)

    # ==================== 图谱 ====================

    def get_link_graph(
        self,
        entity_type: Optional[Union[EntityType, str]] = None,
        max_depth: Optional[int] = None,
        entity_id: Optional[str] = None,
    ) -> GraphData:
        """
        提取关联图谱

        - 不指定 entity_id: 取源或目标为 entity_type 的最新关联，
          数量上限为 max_depth * 10（未指定时 100）
        - 指定 entity_id: 从该实体逐跳扩展，受跳数、节点和边预算约束
        """
        if max_depth is not None and (
            not isinstance(max_depth, int) or isinstance(max_depth, bool) or max_depth < 1
        ):
            raise ValidationError("max_depth 必须大于等于 1", field="max_depth")

        if entity_id is not None:
            return self._expand_graph(entity_type, entity_id, max_depth)

        if entity_type is not None:
            entity_type = self.registry.parse(entity_type)

        cap = (
            max_depth * self.settings.graph_depth_multiplier
            if max_depth is not None
            else self.settings.graph_default_cap
        )
        links = self.store.find_touching_type(entity_type, cap)
        self.summaries.attach(links)
        return self.graph_builder.build(links)

    def _expand_graph(
        self,
        entity_type: Optional[Union[EntityType, str]],
        entity_id: str,
        max_depth: Optional[int],
    ) -> GraphData:
        if entity_type is None:
            raise ValidationError("指定 entity_id 时必须同时指定 entity_type", field="entity_type")
        entity_type, entity_id = self._entity(entity_type, entity_id)

        depth = self.settings.graph_default_depth if max_depth is None else max_depth
        if depth > self.settings.graph_max_depth:
            raise ValidationError(
                f"max_depth 必须在 1 到 {self.settings.graph_max_depth} 之间",
                field="max_depth",
            )

        def neighbors(neighbor_type: str, neighbor_id: str, limit: int) -> List[Link]:
            return (
                self.store.get_outgoing(neighbor_type, neighbor_id, limit=limit)
                + self.store.get_backlinks(neighbor_type, neighbor_id, limit=limit)
            )

        result = expand_links(
            seed=(entity_type.value, entity_id),
            neighbors=neighbors,
            max_depth=depth,
            max_nodes=self.settings.graph_max_nodes,
            max_edges=self.settings.graph_max_edges,
        )
        self.summaries.attach(result.links)

        graph = self.graph_builder.build(result.links)
        graph.stats = GraphStats(
            node_count=len(graph.nodes),
            edge_count=len(graph.edges),
            truncated=result.truncated,
            depth=result.depth,
        )
        return graph

    # ==================== 清理 ====================

    def remove_entity_links(self, entity_type: Union[EntityType, str], entity_id: str) -> int:
        """删除实体作为源或目标的全部关联（实体在别处被删除时调用）"""
        entity_type, entity_id = self._entity(entity_type, entity_id)
        deleted = self.store.delete_by_entity(entity_type, entity_id)
        logger.info(f"实体关联已清理: {entity_type.value}:{entity_id}, 共 {deleted} 条")
        return deleted

    def close(self) -> None:
        """关闭工作线程池，存储和摘要提供者由注册表各自关闭"""
        self._executor.shutdown(wait=True)


def get_link_service() -> LinkService:
    """从服务注册表获取 LinkService"""
    from domains.core.lifecycle import register_core_services
    return register_core_services().get("link_service")
