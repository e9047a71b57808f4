"""
SQL 查询构建器

提供安全、可组合的 SQL 查询构建:
- WHERE 条件（列名白名单 + 参数化）
- 多列排序验证
- LIMIT / OFFSET
- 与列表查询共用条件的 COUNT 查询
"""

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class QueryBuilder:
    """
    SQL 查询构建器

    使用示例:
        builder = QueryBuilder(
            table="entity_links",
            allowed_columns={"source_type", "source_id", "created_at", "seq"},
        )

        sql, params = (
            builder
            .where("source_type", "note")
            .where("source_id", None)          # None 被忽略
            .order_by("created_at DESC, seq DESC")
            .limit(20)
            .offset(40)
            .build()
        )
    """

    table: str
    allowed_columns: set[str]

    # 内部状态
    _where_clauses: list[str] = field(default_factory=list)
    _params: list[Any] = field(default_factory=list)
    _order_by: str | None = None
    _limit: int | None = None
    _offset: int | None = None

    def __post_init__(self):
        # 确保使用新列表，避免共享状态
        self._where_clauses = []
        self._params = []

    def where(self, field_name: str, value: Any) -> 'QueryBuilder':
        """
        添加等值 WHERE 条件，多个条件以 AND 组合

        值为 None 时忽略该条件；不在白名单中的列被忽略并记录警告。
        """
        if value is None:
            return self

        if field_name not in self.allowed_columns:
            logger.warning(f"Invalid filter field ignored: {field_name}")
            return self

        self._where_clauses.append(f'{field_name} = %s')
        self._params.append(value)
        return self

    def where_raw(self, clause: str, params: list[Any] | None = None) -> 'QueryBuilder':
        """添加原始 WHERE 条件（谨慎使用）"""
        self._where_clauses.append(clause)
        if params:
            self._params.extend(params)
        return self

    def order_by(self, order: str) -> 'QueryBuilder':
        """
        设置排序

        Args:
            order: 排序表达式，如 "created_at DESC, seq DESC"
        """
        terms = []
        for part in order.split(','):
            tokens = part.strip().split()
            if not tokens:
                continue

            column = tokens[0].lower()
            direction = tokens[1].upper() if len(tokens) > 1 else 'ASC'

            if column not in self.allowed_columns:
                logger.warning(f"Invalid order column ignored: {column}")
                continue
            if direction not in ('ASC', 'DESC'):
                logger.warning(f"Invalid order direction ignored: {direction}")
                continue

            terms.append(f'{column} {direction}')

        if terms:
            self._order_by = ', '.join(terms)
        return self

    def limit(self, limit: int | None) -> 'QueryBuilder':
        """设置 LIMIT"""
        self._limit = limit
        return self

    def offset(self, offset: int | None) -> 'QueryBuilder':
        """设置 OFFSET"""
        self._offset = offset
        return self

    def build(self) -> tuple[str, list[Any]]:
        """
        构建 SQL 查询

        Returns:
            (sql, params) 元组
        """
        sql = f'SELECT * FROM {self.table}'

        if self._where_clauses:
            sql += ' WHERE ' + ' AND '.join(self._where_clauses)

        if self._order_by:
            sql += f' ORDER BY {self._order_by}'

        params = list(self._params)

        if self._limit is not None:
            sql += ' LIMIT %s'
            params.append(self._limit)

        if self._offset:
            sql += ' OFFSET %s'
            params.append(self._offset)

        return sql, params

    def build_count(self) -> tuple[str, list[Any]]:
        """构建 COUNT 查询，忽略排序和分页"""
        sql = f'SELECT COUNT(*) AS count FROM {self.table}'

        if self._where_clauses:
            sql += ' WHERE ' + ' AND '.join(self._where_clauses)

        return sql, list(self._params)
