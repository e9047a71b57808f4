"""
Link Hub 服务层
"""

from .graph_builder import ExpansionResult, GraphBuilder, expand_links, node_key
from .link_service import LinkService, get_link_service

__all__ = [
    "LinkService",
    "get_link_service",
    "GraphBuilder",
    "ExpansionResult",
    "expand_links",
    "node_key",
]
