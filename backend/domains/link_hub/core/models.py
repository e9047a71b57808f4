"""
关联数据模型

Link 是两个实体之间的有向边，创建后不可修改。
同一 (source, target) 四元组允许重复，也不校验实体是否存在。
"""

import json
import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from domains.core.exceptions import ValidationError

from .registry import EntityType

MAX_ENTITY_ID_LENGTH = 255


def _type_value(value: Union[EntityType, str, None]) -> Optional[str]:
    return value.value if isinstance(value, EntityType) else value


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            # 支持带 Z 后缀的 UTC 时间
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def encode_metadata(value: Any) -> Optional[str]:
    """元数据统一存为字符串，dict/list 编码为 JSON"""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    raise ValidationError("metadata 必须是字符串、对象或数组", field="metadata")


def validate_entity_id(value: Any, field_name: str) -> str:
    """
    校验实体 ID

    Raises:
        ValidationError: 非字符串、去空白后为空或超长
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} 不能为空", field=field_name)
    value = value.strip()
    if len(value) > MAX_ENTITY_ID_LENGTH:
        raise ValidationError(
            f"{field_name} 长度不能超过 {MAX_ENTITY_ID_LENGTH}",
            field=field_name,
        )
    return value


@dataclass
class LinkCreate:
    """创建关联的输入"""
    source_type: Union[EntityType, str]
    source_id: str
    target_type: Union[EntityType, str]
    target_id: str
    metadata: Optional[Any] = None

    def reversed(self) -> "LinkCreate":
        """镜像关联：交换两端，元数据不变"""
        return replace(
            self,
            source_type=self.target_type,
            source_id=self.target_id,
            target_type=self.source_type,
            target_id=self.source_id,
        )


@dataclass
class LinkFilters:
    """关联查询条件，字段之间为 AND 关系，None 表示不过滤"""
    source_type: Optional[Union[EntityType, str]] = None
    source_id: Optional[str] = None
    target_type: Optional[Union[EntityType, str]] = None
    target_id: Optional[str] = None

    def as_columns(self) -> Dict[str, Optional[str]]:
        return {
            "source_type": _type_value(self.source_type),
            "source_id": self.source_id,
            "target_type": _type_value(self.target_type),
            "target_id": self.target_id,
        }

    def matches(self, link: "Link") -> bool:
        return all(
            value is None or getattr(link, column) == value
            for column, value in self.as_columns().items()
        )


@dataclass
class Link:
    """
    实体关联

    Attributes:
        id: 关联 ID（uuid4 字符串，由存储层生成）
        source_type / source_id: 源实体
        target_type / target_id: 目标实体
        metadata: 可选的不透明字符串
        created_at / updated_at: 时间戳
        source_summary / target_summary: 读取时附带的端点摘要，不持久化
    """
    id: str
    source_type: str
    source_id: str
    target_type: str
    target_id: str
    metadata: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    source_summary: Optional[Dict[str, Any]] = field(default=None, compare=False)
    target_summary: Optional[Dict[str, Any]] = field(default=None, compare=False)

    @property
    def source_key(self) -> str:
        return f"{self.source_type}:{self.source_id}"

    @property
    def target_key(self) -> str:
        return f"{self.target_type}:{self.target_id}"

    def touches(self, entity_type: Union[EntityType, str], entity_id: str) -> bool:
        type_value = _type_value(entity_type)
        return (
            (self.source_type == type_value and self.source_id == entity_id)
            or (self.target_type == type_value and self.target_id == entity_id)
        )

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "id": self.id,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "metadata": self.metadata,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
            "source_summary": self.source_summary,
            "target_summary": self.target_summary,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Link":
        """从字典（或数据库行）创建"""
        return cls(
            id=str(data["id"]),
            source_type=_type_value(data["source_type"]),
            source_id=data["source_id"],
            target_type=_type_value(data["target_type"]),
            target_id=data["target_id"],
            metadata=data.get("metadata"),
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
        )


@dataclass
class Pagination:
    """分页信息，total 为精确计数"""
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def create(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if limit > 0 else 0,
            has_next=page * limit < total,
            has_prev=page > 1,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "total_pages": self.total_pages,
            "has_next": self.has_next,
            "has_prev": self.has_prev,
        }


@dataclass
class LinkPage:
    """分页查询结果"""
    links: List[Link]
    total: int
    pagination: Pagination

    def to_dict(self) -> Dict[str, Any]:
        return {
            "links": [link.to_dict() for link in self.links],
            "total": self.total,
            "pagination": self.pagination.to_dict(),
        }


@dataclass
class BidirectionalLinks:
    """双向关联创建结果"""
    forward: Link
    reverse: Link

    def to_dict(self) -> Dict[str, Any]:
        return {"forward": self.forward.to_dict(), "reverse": self.reverse.to_dict()}


@dataclass
class EntityConnections:
    """实体的全部连接"""
    backlinks: List[Link]
    outgoing: List[Link]

    @property
    def total(self) -> int:
        return len(self.backlinks) + len(self.outgoing)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backlinks": [link.to_dict() for link in self.backlinks],
            "outgoing": [link.to_dict() for link in self.outgoing],
            "total": self.total,
        }


@dataclass
class GraphNode:
    """图谱节点，id 为 "<type>:<entity_id>" """
    id: str
    type: str
    entity_id: str
    label: str
    title: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "entity_id": self.entity_id,
            "label": self.label,
            "title": self.title,
        }


@dataclass
class GraphEdge:
    """图谱边，id 即关联 ID"""
    id: str
    source: str
    target: str
    metadata: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "metadata": self.metadata,
        }


@dataclass
class GraphStats:
    """逐跳扩展的统计信息"""
    node_count: int
    edge_count: int
    truncated: bool = False
    depth: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_count": self.node_count,
            "edge_count": self.edge_count,
            "truncated": self.truncated,
            "depth": self.depth,
        }


@dataclass
class GraphData:
    """图谱数据"""
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)
    stats: Optional[GraphStats] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
        }
        if self.stats is not None:
            result["stats"] = self.stats.to_dict()
        return result
