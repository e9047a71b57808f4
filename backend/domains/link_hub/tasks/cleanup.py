"""
关联清理任务

关联不随实体删除而级联删除，这里提供显式清理:
- 删除某个实体作为源或目标的全部关联
- 扫描端点已不存在（无摘要）的孤儿关联

使用方法:
    # 预览某个实体的关联
    python -m domains.link_hub.tasks.cleanup --entity-type note --entity-id abc

    # 实际删除
    python -m domains.link_hub.tasks.cleanup --entity-type note --entity-id abc --execute

    # 扫描孤儿关联
    python -m domains.link_hub.tasks.cleanup --scan-orphans
"""
import argparse
import json
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

from domains.core.exceptions import ConfigurationError
from domains.core.logging import LogConfig, LogFormat, configure_logging

from ..core.models import Link
from ..core.store import LinkStore
from ..core.summaries import EntitySummaryProvider, NullSummaryProvider
from ..services.link_service import LinkService, get_link_service

logger = logging.getLogger(__name__)


def remove_entity_links(
    entity_type: str,
    entity_id: str,
    dry_run: bool = True,
    service: Optional[LinkService] = None,
) -> Dict[str, Any]:
    """
    删除实体的全部关联

    Args:
        entity_type: 实体类型
        entity_id: 实体 ID
        dry_run: 如果为 True，只预览不执行

    Returns:
        {"entity": ..., "link_ids": [...], "count": int, "dry_run": bool}
    """
    service = service or get_link_service()
    connections = service.get_entity_connections(entity_type, entity_id)

    # 自环关联同时出现在两侧
    link_ids = list(dict.fromkeys(
        link.id for link in connections.outgoing + connections.backlinks
    ))
    result = {
        "entity": f"{entity_type}:{entity_id}",
        "link_ids": link_ids,
        "count": len(link_ids),
        "dry_run": dry_run,
    }

    if dry_run:
        logger.info(f"[DRY RUN] 将删除 {entity_type}:{entity_id} 的 {len(link_ids)} 条关联")
        return result

    result["count"] = service.remove_entity_links(entity_type, entity_id)
    return result


def find_orphan_links(
    batch_size: int = 200,
    store: Optional[LinkStore] = None,
    provider: Optional[EntitySummaryProvider] = None,
) -> List[Dict[str, Any]]:
    """
    扫描孤儿关联

    分批遍历全部关联，端点在摘要提供者中查不到的即为孤儿。

    Returns:
        [{"link_id": ..., "missing": ["type:id", ...]}, ...]
    """
    if store is None or provider is None:
        service = get_link_service()
        store = store or service.store
        provider = provider or service.summaries.provider

    if isinstance(provider, NullSummaryProvider):
        raise ConfigurationError(
            "LINK_HUB_SUMMARIES_ENABLED",
            "未启用实体摘要，无法判断关联端点是否存在",
        )

    orphans = []
    skip = 0
    while True:
        batch = store.find_many(skip=skip, take=batch_size)
        if not batch:
            break
        orphans.extend(_orphans_in_batch(batch, provider))
        if len(batch) < batch_size:
            break
        skip += batch_size

    logger.info(f"孤儿关联扫描完成: 共 {len(orphans)} 条")
    return orphans


def _orphans_in_batch(batch: List[Link], provider: EntitySummaryProvider) -> List[Dict[str, Any]]:
    ids_by_type = defaultdict(set)
    for link in batch:
        ids_by_type[link.source_type].add(link.source_id)
        ids_by_type[link.target_type].add(link.target_id)

    existing = set()
    for entity_type, ids in ids_by_type.items():
        for entity_id in provider.fetch(entity_type, sorted(ids)):
            existing.add((entity_type, entity_id))

    orphans = []
    for link in batch:
        missing = [
            f"{entity_type}:{entity_id}"
            for entity_type, entity_id in (
                (link.source_type, link.source_id),
                (link.target_type, link.target_id),
            )
            if (entity_type, entity_id) not in existing
        ]
        if missing:
            orphans.append({"link_id": link.id, "missing": list(dict.fromkeys(missing))})
    return orphans


def delete_orphan_links(
    orphans: List[Dict[str, Any]],
    store: Optional[LinkStore] = None,
) -> int:
    """删除扫描出的孤儿关联，已被删除的跳过"""
    store = store or get_link_service().store
    deleted = 0
    for orphan in orphans:
        if store.find_by_id(orphan["link_id"]) is None:
            continue
        store.delete(orphan["link_id"])
        deleted += 1
    logger.info(f"已删除孤儿关联: {deleted} 条")
    return deleted


def main(argv: Optional[List[str]] = None):
    """CLI 入口"""
    parser = argparse.ArgumentParser(description="清理实体关联")
    parser.add_argument("--entity-type", help="实体类型")
    parser.add_argument("--entity-id", help="实体 ID")
    parser.add_argument(
        "--scan-orphans",
        action="store_true",
        help="扫描端点已不存在的关联",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=200,
        help="扫描孤儿关联时每批数量",
    )
    parser.add_argument(
        "--execute",
        action="store_true",
        help="实际执行删除（默认仅预览）",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="跳过删除确认",
    )

    args = parser.parse_args(argv)

    has_entity = bool(args.entity_type and args.entity_id)
    if has_entity == args.scan_orphans:
        parser.error("需要指定 --entity-type/--entity-id 或 --scan-orphans 之一")

    configure_logging(LogConfig(format=LogFormat.CONSOLE, service_name="link-cleanup"))

    dry_run = not args.execute
    if args.execute and not args.yes:
        confirm = input("确定要删除关联吗？此操作不可逆！(yes/no): ")
        if confirm.lower() != "yes":
            print("已取消")
            return

    if has_entity:
        result = remove_entity_links(args.entity_type, args.entity_id, dry_run=dry_run)
    else:
        orphans = find_orphan_links(batch_size=args.batch_size)
        result = {"orphans": orphans, "count": len(orphans), "dry_run": dry_run}
        if not dry_run:
            result["deleted"] = delete_orphan_links(orphans)

    if dry_run:
        print("\n[DRY RUN] 以下关联将被删除（使用 --execute 实际执行）:")
    else:
        print("\n执行结果:")

    print(json.dumps(result, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
