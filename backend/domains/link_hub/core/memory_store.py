"""
内存关联存储

用于本地开发和测试，语义与 PostgresLinkStore 一致。
返回的 Link 均为副本，调用方修改不会影响存储内容。
"""

import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Union

from domains.core.exceptions import LinkNotFoundError

from .models import Link, LinkCreate, LinkFilters, encode_metadata
from .registry import EntityType
from .store import LinkStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryLinkStore(LinkStore):
    """基于字典的关联存储，以锁保护内部状态"""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or _utcnow
        self._lock = threading.Lock()
        self._links: Dict[str, Link] = {}
        self._seq: Dict[str, int] = {}
        self._next_seq = 0

    def _newest_first(self, links: Iterable[Link]) -> List[Link]:
        ordered = sorted(
            links,
            key=lambda link: (link.created_at, self._seq[link.id]),
            reverse=True,
        )
        return [replace(link) for link in ordered]

    def create(self, data: LinkCreate) -> Link:
        now = self._clock()
        link = Link(
            id=str(uuid.uuid4()),
            source_type=data.source_type.value if isinstance(data.source_type, EntityType) else data.source_type,
            source_id=data.source_id,
            target_type=data.target_type.value if isinstance(data.target_type, EntityType) else data.target_type,
            target_id=data.target_id,
            metadata=encode_metadata(data.metadata),
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._links[link.id] = link
            self._seq[link.id] = self._next_seq
            self._next_seq += 1

        logger.debug(f"创建关联: {link.source_key} -> {link.target_key} ({link.id})")
        return replace(link)

    def find_by_id(self, link_id: str) -> Optional[Link]:
        with self._lock:
            link = self._links.get(link_id)
        return replace(link) if link else None

    def delete(self, link_id: str) -> None:
        with self._lock:
            if link_id not in self._links:
                raise LinkNotFoundError(link_id)
            del self._links[link_id]
            del self._seq[link_id]

    def find_many(
        self,
        filters: Optional[LinkFilters] = None,
        skip: int = 0,
        take: Optional[int] = None,
    ) -> List[Link]:
        filters = filters or LinkFilters()
        with self._lock:
            links = self._newest_first(l for l in self._links.values() if filters.matches(l))
        end = skip + take if take is not None else None
        return links[skip:end]

    def count(self, filters: Optional[LinkFilters] = None) -> int:
        filters = filters or LinkFilters()
        with self._lock:
            return sum(1 for link in self._links.values() if filters.matches(link))

    def get_outgoing(
        self,
        entity_type: Union[EntityType, str],
        entity_id: str,
        limit: Optional[int] = None,
    ) -> List[Link]:
        return self.find_many(LinkFilters(source_type=entity_type, source_id=entity_id), take=limit)

    def get_backlinks(
        self,
        entity_type: Union[EntityType, str],
        entity_id: str,
        limit: Optional[int] = None,
    ) -> List[Link]:
        return self.find_many(LinkFilters(target_type=entity_type, target_id=entity_id), take=limit)

    def search(self, query: str, limit: int = 10) -> List[Link]:
        with self._lock:
            links = self._newest_first(
                l for l in self._links.values()
                if l.metadata is not None and query in l.metadata
            )
        return links[:limit]

    def find_touching_type(
        self,
        entity_type: Optional[Union[EntityType, str]],
        limit: int,
    ) -> List[Link]:
        type_value = entity_type.value if isinstance(entity_type, EntityType) else entity_type
        with self._lock:
            links = self._newest_first(
                l for l in self._links.values()
                if type_value is None or type_value in (l.source_type, l.target_type)
            )
        return links[:limit]

    def delete_by_entity(self, entity_type: Union[EntityType, str], entity_id: str) -> int:
        with self._lock:
            doomed = [l.id for l in self._links.values() if l.touches(entity_type, entity_id)]
            for link_id in doomed:
                del self._links[link_id]
                del self._seq[link_id]
        if doomed:
            type_value = entity_type.value if isinstance(entity_type, EntityType) else entity_type
            logger.info(f"级联删除关联: {type_value}:{entity_id}, 共 {len(doomed)} 条")
        return len(doomed)

    def close(self) -> None:
        with self._lock:
            self._links.clear()
            self._seq.clear()
