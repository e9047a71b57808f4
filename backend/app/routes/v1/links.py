"""Link API routes.

提供实体关联的 REST 接口:
- 关联 CRUD 与双向创建
- 反向链接 / 出链 / 全部连接
- 元数据搜索
- 关联图谱

参数范围校验由 LinkService 完成，非法值返回 400。
NOTE: 所有同步服务调用都使用 run_sync 包装，避免阻塞 event loop。
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, Response, status

from app.core.async_utils import run_sync
from app.core.deps import LinkDep, LinkServiceDep
from app.schemas.common import ApiResponse, model_to_dict
from app.schemas.link import (
    BidirectionalLinksSchema,
    EntityConnectionsSchema,
    GraphSchema,
    LinkCreateRequest,
    LinkPageSchema,
    LinkSchema,
    RemovedLinksSchema,
)
from domains.link_hub.core import LinkCreate, LinkFilters

logger = logging.getLogger(__name__)

router = APIRouter()


def _links(links) -> list:
    return [LinkSchema.model_validate(model_to_dict(link)) for link in links]


def _to_create(request: LinkCreateRequest) -> LinkCreate:
    return LinkCreate(
        source_type=request.source_type,
        source_id=request.source_id,
        target_type=request.target_type,
        target_id=request.target_id,
        metadata=request.metadata,
    )


@router.get("/", response_model=ApiResponse[LinkPageSchema])
async def list_links(
    service: LinkServiceDep,
    source_type: Optional[str] = None,
    source_id: Optional[str] = None,
    target_type: Optional[str] = None,
    target_id: Optional[str] = None,
    page: int = Query(1, description="页码，从 1 开始"),
    limit: Optional[int] = Query(None, description="每页数量"),
):
    """
    分页获取关联列表

    total 为精确计数。
    """
    filters = LinkFilters(
        source_type=source_type,
        source_id=source_id,
        target_type=target_type,
        target_id=target_id,
    )
    result = await run_sync(service.list_links, filters, page=page, limit=limit)
    return ApiResponse(data=LinkPageSchema.model_validate(result.to_dict()))


@router.get("/search/{query}", response_model=ApiResponse[list[LinkSchema]])
async def search_links(
    service: LinkServiceDep,
    query: str = Path(..., description="元数据关键词（区分大小写）"),
    limit: Optional[int] = Query(None, description="返回数量上限"),
):
    """按元数据搜索关联"""
    links = await run_sync(service.search_links, query, limit)
    return ApiResponse(data=_links(links))


@router.get("/graph", response_model=ApiResponse[GraphSchema])
async def get_link_graph(
    service: LinkServiceDep,
    entity_type: Optional[str] = Query(None, description="实体类型"),
    entity_id: Optional[str] = Query(None, description="种子实体 ID，指定时逐跳扩展"),
    max_depth: Optional[int] = Query(None, description="深度"),
):
    """
    获取关联图谱

    - 不指定 entity_id: 最新的 max_depth * 10 条关联（默认 100）
    - 指定 entity_id: 从该实体逐跳扩展，返回 stats
    """
    graph = await run_sync(
        service.get_link_graph,
        entity_type=entity_type,
        max_depth=max_depth,
        entity_id=entity_id,
    )
    return ApiResponse(data=GraphSchema.model_validate(graph.to_dict()))


@router.get("/backlinks/{entity_type}/{entity_id}", response_model=ApiResponse[list[LinkSchema]])
async def get_backlinks(
    service: LinkServiceDep,
    entity_type: str = Path(..., description="实体类型"),
    entity_id: str = Path(..., description="实体 ID"),
):
    """获取指向实体的关联"""
    links = await run_sync(service.get_backlinks, entity_type, entity_id)
    return ApiResponse(data=_links(links))


@router.get("/outgoing/{entity_type}/{entity_id}", response_model=ApiResponse[list[LinkSchema]])
async def get_outgoing(
    service: LinkServiceDep,
    entity_type: str = Path(..., description="实体类型"),
    entity_id: str = Path(..., description="实体 ID"),
):
    """获取从实体出发的关联"""
    links = await run_sync(service.get_outgoing, entity_type, entity_id)
    return ApiResponse(data=_links(links))


@router.get("/connections/{entity_type}/{entity_id}", response_model=ApiResponse[EntityConnectionsSchema])
async def get_entity_connections(
    service: LinkServiceDep,
    entity_type: str = Path(..., description="实体类型"),
    entity_id: str = Path(..., description="实体 ID"),
):
    """获取实体的反向链接和出链"""
    connections = await run_sync(service.get_entity_connections, entity_type, entity_id)
    return ApiResponse(data=EntityConnectionsSchema.model_validate(connections.to_dict()))


@router.get("/{link_id}", response_model=ApiResponse[LinkSchema])
async def get_link(link: LinkDep):
    """获取单个关联"""
    return ApiResponse(data=LinkSchema.model_validate(model_to_dict(link)))


@router.post("/", response_model=ApiResponse[LinkSchema], status_code=status.HTTP_201_CREATED)
async def create_link(request: LinkCreateRequest, service: LinkServiceDep):
    """创建关联"""
    link = await run_sync(service.create_link, _to_create(request))
    return ApiResponse(
        data=LinkSchema.model_validate(model_to_dict(link)),
        message="关联创建成功",
    )


@router.post(
    "/bidirectional",
    response_model=ApiResponse[BidirectionalLinksSchema],
    status_code=status.HTTP_201_CREATED,
)
async def create_bidirectional_link(request: LinkCreateRequest, service: LinkServiceDep):
    """创建一对互为镜像的关联"""
    result = await run_sync(service.create_bidirectional_link, _to_create(request))
    return ApiResponse(
        data=BidirectionalLinksSchema.model_validate(result.to_dict()),
        message="双向关联创建成功",
    )


@router.delete(
    "/entity/{entity_type}/{entity_id}",
    response_model=ApiResponse[RemovedLinksSchema],
)
async def remove_entity_links(
    service: LinkServiceDep,
    entity_type: str = Path(..., description="实体类型"),
    entity_id: str = Path(..., description="实体 ID"),
):
    """删除实体作为源或目标的全部关联"""
    deleted = await run_sync(service.remove_entity_links, entity_type, entity_id)
    return ApiResponse(
        data=RemovedLinksSchema(entity_type=entity_type, entity_id=entity_id, deleted=deleted),
        message=f"已删除 {deleted} 条关联",
    )


@router.delete("/{link_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
async def delete_link(
    service: LinkServiceDep,
    link_id: str = Path(..., description="关联 ID"),
):
    """删除关联"""
    await run_sync(service.delete_link, link_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
