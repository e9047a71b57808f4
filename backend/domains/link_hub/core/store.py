"""
关联存储层

LinkStore 定义持久化契约，PostgresLinkStore 基于 psycopg2 实现。
所有列表结果按 created_at 倒序，同一时间戳按写入顺序倒序。
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import List, Optional, Union

import psycopg2

from domains.core.database import QueryBuilder, ThreadSafeConnectionMixin
from domains.core.exceptions import LinkNotFoundError, StorageError

from .models import Link, LinkCreate, LinkFilters, encode_metadata
from .registry import EntityType

logger = logging.getLogger(__name__)


def _type_value(value: Union[EntityType, str, None]) -> Optional[str]:
    return value.value if isinstance(value, EntityType) else value


class LinkStore(ABC):
    """关联存储契约"""

    @abstractmethod
    def create(self, data: LinkCreate) -> Link:
        """创建关联，失败时抛出 StorageError"""

    @abstractmethod
    def find_by_id(self, link_id: str) -> Optional[Link]:
        """按 ID 获取，不存在返回 None"""

    @abstractmethod
    def delete(self, link_id: str) -> None:
        """删除关联，不存在时抛出 LinkNotFoundError"""

    @abstractmethod
    def find_many(
        self,
        filters: Optional[LinkFilters] = None,
        skip: int = 0,
        take: Optional[int] = None,
    ) -> List[Link]:
        """按条件查询（AND），支持偏移和数量限制"""

    @abstractmethod
    def count(self, filters: Optional[LinkFilters] = None) -> int:
        """按条件精确计数"""

    @abstractmethod
    def get_outgoing(
        self,
        entity_type: Union[EntityType, str],
        entity_id: str,
        limit: Optional[int] = None,
    ) -> List[Link]:
        """实体作为源的关联，limit 为 None 时不限数量"""

    @abstractmethod
    def get_backlinks(
        self,
        entity_type: Union[EntityType, str],
        entity_id: str,
        limit: Optional[int] = None,
    ) -> List[Link]:
        """实体作为目标的关联，limit 为 None 时不限数量"""

    @abstractmethod
    def search(self, query: str, limit: int = 10) -> List[Link]:
        """元数据包含 query 的关联（区分大小写的子串匹配）"""

    @abstractmethod
    def find_touching_type(
        self,
        entity_type: Optional[Union[EntityType, str]],
        limit: int,
    ) -> List[Link]:
        """源或目标为指定类型的关联，None 表示不过滤"""

    @abstractmethod
    def delete_by_entity(self, entity_type: Union[EntityType, str], entity_id: str) -> int:
        """删除实体作为源或目标的全部关联，返回删除数量"""

    def close(self) -> None:
        """释放资源"""


class PostgresLinkStore(ThreadSafeConnectionMixin, LinkStore):
    """PostgreSQL 关联存储"""

    table_name = "entity_links"

    allowed_columns = {
        "id", "seq",
        "source_type", "source_id",
        "target_type", "target_id",
        "metadata", "created_at", "updated_at",
    }

    default_order = "created_at DESC, seq DESC"

    SCHEMA_SQL = """
        CREATE TABLE IF NOT EXISTS entity_links (
            id VARCHAR(36) PRIMARY KEY,
            seq BIGSERIAL NOT NULL,
            source_type VARCHAR(32) NOT NULL,
            source_id VARCHAR(255) NOT NULL,
            target_type VARCHAR(32) NOT NULL,
            target_id VARCHAR(255) NOT NULL,
            metadata TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        CREATE INDEX IF NOT EXISTS idx_entity_links_source
            ON entity_links (source_type, source_id);
        CREATE INDEX IF NOT EXISTS idx_entity_links_target
            ON entity_links (target_type, target_id);
        CREATE INDEX IF NOT EXISTS idx_entity_links_created_at
            ON entity_links (created_at DESC, seq DESC);
    """

    def __init__(self, database_url: Optional[str] = None):
        self._init_connection(database_url)
        self._schema_ready = False
        self._schema_lock = threading.Lock()

    def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        with self._schema_lock:
            if self._schema_ready:
                return
            with self._cursor() as cursor:
                cursor.execute(self.SCHEMA_SQL)
            self._schema_ready = True
            logger.info(f"关联表已就绪: {self.table_name}")

    @contextmanager
    def _session(self, operation: str):
        """带建表检查的游标，psycopg2 错误统一转为 StorageError"""
        try:
            self._ensure_schema()
            with self._cursor() as cursor:
                yield cursor
        except psycopg2.Error as e:
            logger.error(f"{operation}失败: {e}")
            raise StorageError(
                f"{operation}失败",
                details={"operation": operation},
                cause=e,
            ) from e

    def _query(self) -> QueryBuilder:
        return QueryBuilder(table=self.table_name, allowed_columns=self.allowed_columns)

    def _fetch(self, operation: str, builder: QueryBuilder) -> List[Link]:
        sql, params = builder.order_by(self.default_order).build()
        with self._session(operation) as cursor:
            cursor.execute(sql, params)
            return [Link.from_dict(dict(row)) for row in cursor.fetchall()]

    # ==================== 写操作 ====================

    def create(self, data: LinkCreate) -> Link:
        link_id = str(uuid.uuid4())
        with self._session("创建关联") as cursor:
            cursor.execute(
                """
                INSERT INTO entity_links (
                    id, source_type, source_id, target_type, target_id, metadata
                ) VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    link_id,
                    _type_value(data.source_type),
                    data.source_id,
                    _type_value(data.target_type),
                    data.target_id,
                    encode_metadata(data.metadata),
                ),
            )
            row = cursor.fetchone()

        if row is None:
            raise StorageError("创建关联失败: 未返回记录", details={"operation": "创建关联"})

        link = Link.from_dict(dict(row))
        logger.info(f"创建关联成功: {link.source_key} -> {link.target_key} ({link.id})")
        return link

    def delete(self, link_id: str) -> None:
        with self._session("删除关联") as cursor:
            cursor.execute("DELETE FROM entity_links WHERE id = %s", (link_id,))
            deleted = cursor.rowcount

        if not deleted:
            raise LinkNotFoundError(link_id)
        logger.info(f"删除关联成功: {link_id}")

    def delete_by_entity(self, entity_type: Union[EntityType, str], entity_id: str) -> int:
        type_value = _type_value(entity_type)
        with self._session("级联删除关联") as cursor:
            cursor.execute(
                """
                DELETE FROM entity_links
                WHERE (source_type = %s AND source_id = %s)
                   OR (target_type = %s AND target_id = %s)
                """,
                (type_value, entity_id, type_value, entity_id),
            )
            deleted_count = cursor.rowcount

        if deleted_count > 0:
            logger.info(f"级联删除关联: {type_value}:{entity_id}, 共 {deleted_count} 条")
        return deleted_count

    # ==================== 读操作 ====================

    def find_by_id(self, link_id: str) -> Optional[Link]:
        with self._session("查询关联") as cursor:
            cursor.execute("SELECT * FROM entity_links WHERE id = %s", (link_id,))
            row = cursor.fetchone()
        return Link.from_dict(dict(row)) if row else None

    def find_many(
        self,
        filters: Optional[LinkFilters] = None,
        skip: int = 0,
        take: Optional[int] = None,
    ) -> List[Link]:
        builder = self._query()
        for column, value in (filters or LinkFilters()).as_columns().items():
            builder.where(column, value)
        builder.limit(take).offset(skip)
        return self._fetch("查询关联列表", builder)

    def count(self, filters: Optional[LinkFilters] = None) -> int:
        builder = self._query()
        for column, value in (filters or LinkFilters()).as_columns().items():
            builder.where(column, value)
        sql, params = builder.build_count()
        with self._session("统计关联数量") as cursor:
            cursor.execute(sql, params)
            row = cursor.fetchone()
        return int(row["count"]) if row else 0

    def get_outgoing(
        self,
        entity_type: Union[EntityType, str],
        entity_id: str,
        limit: Optional[int] = None,
    ) -> List[Link]:
        builder = (
            self._query()
            .where("source_type", _type_value(entity_type))
            .where("source_id", entity_id)
            .limit(limit)
        )
        return self._fetch("查询出链", builder)

    def get_backlinks(
        self,
        entity_type: Union[EntityType, str],
        entity_id: str,
        limit: Optional[int] = None,
    ) -> List[Link]:
        builder = (
            self._query()
            .where("target_type", _type_value(entity_type))
            .where("target_id", entity_id)
            .limit(limit)
        )
        return self._fetch("查询反向链接", builder)

    def search(self, query: str, limit: int = 10) -> List[Link]:
        # strpos 区分大小写，且不把 % _ 当作通配符
        builder = (
            self._query()
            .where_raw("strpos(metadata, %s) > 0", [query])
            .limit(limit)
        )
        return self._fetch("搜索关联", builder)

    def find_touching_type(
        self,
        entity_type: Optional[Union[EntityType, str]],
        limit: int,
    ) -> List[Link]:
        builder = self._query().limit(limit)
        if entity_type is not None:
            type_value = _type_value(entity_type)
            builder.where_raw("(source_type = %s OR target_type = %s)", [type_value, type_value])
        return self._fetch("查询图谱关联", builder)
