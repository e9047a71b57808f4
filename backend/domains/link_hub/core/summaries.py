"""
实体摘要

图谱节点的 label/title 来自各实体存储提供的轻量摘要。
摘要按类型批量获取（每种类型一次查询），避免 N+1。

实现:
- SqlSummaryProvider: 直接查询实验记录表
- StaticSummaryProvider: 基于字典（开发/测试）
- NullSummaryProvider: 不提供摘要，节点使用通用标签
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import psycopg2

from domains.core.database import ThreadSafeConnectionMixin
from domains.core.exceptions import StorageError

from .models import Link
from .registry import EntityType

logger = logging.getLogger(__name__)

Summary = Dict[str, Any]


def _type_value(value: Union[EntityType, str]) -> str:
    return value.value if isinstance(value, EntityType) else value


class EntitySummaryProvider(ABC):
    """实体摘要提供者"""

    @abstractmethod
    def fetch(self, entity_type: Union[EntityType, str], ids: Sequence[str]) -> Dict[str, Summary]:
        """
        批量获取摘要

        Returns:
            {entity_id: summary}，不存在的 ID 不出现在结果中
        """

    def close(self) -> None:
        """释放资源"""


class NullSummaryProvider(EntitySummaryProvider):
    """不提供任何摘要"""

    def fetch(self, entity_type, ids):
        return {}


class StaticSummaryProvider(EntitySummaryProvider):
    """基于字典的摘要提供者"""

    def __init__(self, summaries: Optional[Dict[str, Dict[str, Summary]]] = None):
        self._summaries: Dict[str, Dict[str, Summary]] = defaultdict(dict)
        for entity_type, items in (summaries or {}).items():
            self._summaries[_type_value(entity_type)].update(items)

    def add(self, entity_type: Union[EntityType, str], entity_id: str, summary: Summary) -> None:
        self._summaries[_type_value(entity_type)][entity_id] = summary

    def remove(self, entity_type: Union[EntityType, str], entity_id: str) -> None:
        self._summaries[_type_value(entity_type)].pop(entity_id, None)

    def fetch(self, entity_type, ids):
        items = self._summaries.get(_type_value(entity_type), {})
        return {entity_id: items[entity_id] for entity_id in ids if entity_id in items}


class SqlSummaryProvider(ThreadSafeConnectionMixin, EntitySummaryProvider):
    """从实验记录表批量查询摘要"""

    # 类型 -> (查询, ID 列)
    SUMMARY_QUERIES: Dict[EntityType, tuple] = {
        EntityType.NOTE: (
            "SELECT id::text AS id, title FROM notes",
            "id",
        ),
        EntityType.HIGHLIGHT: (
            "SELECT h.id::text AS id, h.text, h.page, p.title AS pdf_title "
            "FROM highlights h LEFT JOIN pdfs p ON p.id = h.pdf_id",
            "h.id",
        ),
        EntityType.DATABASE_ENTRY: (
            "SELECT id::text AS id, name, type FROM database_entries",
            "id",
        ),
        EntityType.PROJECT: (
            "SELECT id::text AS id, name FROM projects",
            "id",
        ),
        EntityType.EXPERIMENT: (
            "SELECT id::text AS id, name FROM experiments",
            "id",
        ),
        EntityType.PROTOCOL: (
            "SELECT id::text AS id, name FROM protocols",
            "id",
        ),
        EntityType.PROTOCOL_EXECUTION: (
            "SELECT e.id::text AS id, e.status, p.name AS parent_name "
            "FROM protocol_executions e LEFT JOIN protocols p ON p.id = e.protocol_id",
            "e.id",
        ),
        EntityType.RECIPE: (
            "SELECT id::text AS id, name FROM recipes",
            "id",
        ),
        EntityType.RECIPE_EXECUTION: (
            "SELECT e.id::text AS id, e.status, r.name AS parent_name "
            "FROM recipe_executions e LEFT JOIN recipes r ON r.id = e.recipe_id",
            "e.id",
        ),
        EntityType.TABLE: (
            "SELECT id::text AS id, name FROM tables",
            "id",
        ),
    }

    def __init__(self, database_url: Optional[str] = None):
        self._init_connection(database_url)

    def fetch(self, entity_type, ids):
        try:
            query = self.SUMMARY_QUERIES.get(EntityType(entity_type))
        except ValueError:
            query = None
        if query is None or not ids:
            return {}

        select_sql, id_column = query
        try:
            with self._cursor() as cursor:
                cursor.execute(f"{select_sql} WHERE {id_column}::text = ANY(%s)", (list(ids),))
                rows = cursor.fetchall()
        except psycopg2.Error as e:
            raise StorageError(
                f"查询实体摘要失败: {_type_value(entity_type)}",
                details={"entity_type": _type_value(entity_type)},
                cause=e,
            ) from e

        result = {}
        for row in rows:
            row = dict(row)
            result[row.pop("id")] = row
        return result


class SummaryResolver:
    """
    为关联附加端点摘要

    按类型收集两端 ID，每种类型调用一次 provider。
    provider 失败时记录日志并跳过该类型，节点退回通用标签。
    """

    def __init__(self, provider: EntitySummaryProvider):
        self.provider = provider

    def resolve(self, endpoints: Iterable[tuple]) -> Dict[tuple, Summary]:
        """批量解析 (type, id) 端点，返回 {(type, id): summary}"""
        ids_by_type: Dict[str, set] = defaultdict(set)
        for entity_type, entity_id in endpoints:
            ids_by_type[_type_value(entity_type)].add(entity_id)

        resolved = {}
        for entity_type, ids in ids_by_type.items():
            try:
                summaries = self.provider.fetch(entity_type, sorted(ids))
            except Exception as e:
                logger.warning(f"获取实体摘要失败: {entity_type}, {e}")
                continue
            for entity_id, summary in summaries.items():
                resolved[(entity_type, entity_id)] = summary
        return resolved

    def attach(self, links: List[Link]) -> List[Link]:
        """原地设置 source_summary / target_summary"""
        if not links:
            return links

        endpoints = []
        for link in links:
            endpoints.append((link.source_type, link.source_id))
            endpoints.append((link.target_type, link.target_id))

        resolved = self.resolve(endpoints)
        for link in links:
            link.source_summary = resolved.get((link.source_type, link.source_id))
            link.target_summary = resolved.get((link.target_type, link.target_id))
        return links


def create_summary_provider() -> EntitySummaryProvider:
    """根据配置创建摘要提供者"""
    from .config import get_link_hub_settings

    settings = get_link_hub_settings()
    if not settings.summaries_enabled:
        return NullSummaryProvider()
    if settings.store_backend == "memory":
        return StaticSummaryProvider()
    return SqlSummaryProvider()
