"""
图谱构建

GraphBuilder 把关联列表转换为去重后的节点集合和边集合，不访问存储。
expand_links 从种子实体出发逐跳扩展，邻居通过调用方传入的函数获取。
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..core.models import GraphData, GraphEdge, GraphNode, Link
from ..core.registry import EntityTypeRegistry, get_entity_registry

logger = logging.getLogger(__name__)

# (entity_type, entity_id)
Endpoint = Tuple[str, str]
# (entity_type, entity_id, limit) -> 每个方向最多 limit 条关联
NeighborFetcher = Callable[[str, str, int], List[Link]]


def node_key(entity_type: str, entity_id: str) -> str:
    return f"{entity_type}:{entity_id}"


class GraphBuilder:
    """
    关联列表 -> {nodes, edges}

    节点集合恰好等于所有边的端点集合，每条关联对应一条边。
    """

    def __init__(self, registry: Optional[EntityTypeRegistry] = None):
        self.registry = registry or get_entity_registry()

    def build(self, links: Iterable[Link]) -> GraphData:
        nodes: Dict[str, GraphNode] = {}
        edges: List[GraphEdge] = []

        for link in links:
            source = self._add_node(nodes, link.source_type, link.source_id, link.source_summary)
            target = self._add_node(nodes, link.target_type, link.target_id, link.target_summary)
            edges.append(GraphEdge(
                id=link.id,
                source=source,
                target=target,
                metadata=link.metadata,
            ))

        return GraphData(nodes=list(nodes.values()), edges=edges)

    def _add_node(
        self,
        nodes: Dict[str, GraphNode],
        entity_type: str,
        entity_id: str,
        summary,
    ) -> str:
        key = node_key(entity_type, entity_id)
        if key not in nodes:
            display = self.registry.describe(entity_type, entity_id, summary)
            nodes[key] = GraphNode(
                id=key,
                type=entity_type,
                entity_id=entity_id,
                label=display["label"],
                title=display["title"],
            )
        return key


@dataclass
class ExpansionResult:
    """逐跳扩展结果"""
    links: List[Link]
    depth: int
    truncated: bool


def expand_links(
    seed: Endpoint,
    neighbors: NeighborFetcher,
    max_depth: int,
    max_nodes: int,
    max_edges: int,
) -> ExpansionResult:
    """
    从种子实体出发广度优先扩展

    每一跳对当前前沿的每个节点取出链和反向链接。关联按 ID 去重，
    已访问的节点不再展开。达到跳数上限、节点预算或边预算时停止，
    预算触发时 truncated 为 True。

    邻居每个方向最多取 max_edges + 1 条: 重复关联至多 max_edges 条，
    结果被截断时其中的新关联必然超出剩余边预算，截断照常被检测到。
    """
    fetch_limit = max_edges + 1
    visited = {node_key(*seed)}
    collected: Dict[str, Link] = {}
    frontier: List[Endpoint] = [seed]
    depth = 0
    truncated = False

    while frontier and depth < max_depth and not truncated:
        depth += 1
        next_frontier: List[Endpoint] = []

        for entity_type, entity_id in frontier:
            for link in neighbors(entity_type, entity_id, fetch_limit):
                if link.id in collected:
                    continue

                endpoints = [
                    (link.source_type, link.source_id),
                    (link.target_type, link.target_id),
                ]
                new_nodes = []
                for endpoint in endpoints:
                    key = node_key(*endpoint)
                    if key not in visited and endpoint not in new_nodes:
                        new_nodes.append(endpoint)

                if len(collected) + 1 > max_edges or len(visited) + len(new_nodes) > max_nodes:
                    truncated = True
                    break

                collected[link.id] = link
                for endpoint in new_nodes:
                    visited.add(node_key(*endpoint))
                    next_frontier.append(endpoint)

            if truncated:
                break

        frontier = next_frontier

    if truncated:
        logger.info(
            f"图谱扩展触发预算: seed={node_key(*seed)}, depth={depth}, "
            f"nodes={len(visited)}, edges={len(collected)}"
        )

    return ExpansionResult(
        links=list(collected.values()),
        depth=depth,
        truncated=truncated,
    )
