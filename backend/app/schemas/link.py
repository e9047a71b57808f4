"""Link API schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class LinkCreateRequest(BaseModel):
    """创建关联请求"""

    source_type: str = Field(..., description="源实体类型")
    source_id: str = Field(..., description="源实体 ID")
    target_type: str = Field(..., description="目标实体类型")
    target_id: str = Field(..., description="目标实体 ID")
    metadata: Optional[Union[str, Dict[str, Any], List[Any]]] = Field(
        None, description="元数据，对象会编码为 JSON 字符串"
    )


class LinkSchema(BaseModel):
    """关联"""

    id: str
    source_type: str
    source_id: str
    target_type: str
    target_id: str
    metadata: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    source_summary: Optional[Dict[str, Any]] = None
    target_summary: Optional[Dict[str, Any]] = None


class PaginationSchema(BaseModel):
    """分页信息"""

    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class LinkPageSchema(BaseModel):
    """关联分页结果"""

    links: List[LinkSchema]
    total: int
    pagination: PaginationSchema


class BidirectionalLinksSchema(BaseModel):
    """双向关联"""

    forward: LinkSchema
    reverse: LinkSchema


class EntityConnectionsSchema(BaseModel):
    """实体的反向链接和出链"""

    backlinks: List[LinkSchema]
    outgoing: List[LinkSchema]
    total: int


class GraphNodeSchema(BaseModel):
    """图谱节点"""

    id: str = Field(..., description="<type>:<entity_id>")
    type: str
    entity_id: str
    label: str
    title: str


class GraphEdgeSchema(BaseModel):
    """图谱边"""

    id: str
    source: str
    target: str
    metadata: Optional[str] = None


class GraphStatsSchema(BaseModel):
    """逐跳扩展统计"""

    node_count: int
    edge_count: int
    truncated: bool
    depth: int


class GraphSchema(BaseModel):
    """关联图谱"""

    nodes: List[GraphNodeSchema]
    edges: List[GraphEdgeSchema]
    stats: Optional[GraphStatsSchema] = None


class RemovedLinksSchema(BaseModel):
    """实体关联清理结果"""

    entity_type: str
    entity_id: str
    deleted: int
