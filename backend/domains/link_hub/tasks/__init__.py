"""
关联清理任务模块
"""

from .cleanup import (
    delete_orphan_links,
    find_orphan_links,
    remove_entity_links,
)

__all__ = [
    "remove_entity_links",
    "find_orphan_links",
    "delete_orphan_links",
]
