"""
数据库辅助组件

- ThreadSafeConnectionMixin: 每线程独立的 psycopg2 连接
- QueryBuilder: 安全、可组合的 SQL 查询构建
"""

from .connection import ThreadSafeConnectionMixin, get_database_url
from .query_builder import QueryBuilder

__all__ = [
    "ThreadSafeConnectionMixin",
    "get_database_url",
    "QueryBuilder",
]
