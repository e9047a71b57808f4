"""
实体类型注册表

关联的两端是异构的实验记录（笔记、高亮、数据库条目、项目、实验等），
这里以 {type, id} 加每种类型的标签访问器来表示，而不是类型继承。
新增一种参与者只需注册一个描述符，调用方无需改动。
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from domains.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


class EntityType(str, Enum):
    """关联参与者类型"""

    NOTE = "note"
    HIGHLIGHT = "highlight"
    DATABASE_ENTRY = "databaseEntry"
    PROJECT = "project"
    EXPERIMENT = "experiment"
    PROTOCOL = "protocol"
    PROTOCOL_EXECUTION = "protocolExecution"
    RECIPE = "recipe"
    RECIPE_EXECUTION = "recipeExecution"
    TABLE = "table"


# (label, title)，任一为 None 时使用通用占位
LabelAccessor = Callable[[Dict[str, Any], "EntityTypeRegistry"], Tuple[Optional[str], Optional[str]]]


@dataclass(frozen=True)
class EntityTypeDescriptor:
    """实体类型描述符"""
    entity_type: EntityType
    accessor: LabelAccessor


def _text(value: Any) -> Optional[str]:
    """摘要字段转为非空字符串"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value
    return None


def first_field(*fields: str) -> LabelAccessor:
    """按顺序取第一个非空字段作为 label 和 title"""

    def accessor(summary: Dict[str, Any], registry: "EntityTypeRegistry"):
        for name in fields:
            value = _text(summary.get(name))
            if value is not None:
                return value, value
        return None, None

    return accessor


def highlight_accessor(summary: Dict[str, Any], registry: "EntityTypeRegistry"):
    """高亮: title 为截断文本，label 为页码"""
    text = _text(summary.get("text"))
    title = None
    if text is not None:
        title = text[:registry.highlight_title_length] + "..."

    page = _text(summary.get("page"))
    label = f"Highlight (p.{page})" if page is not None else title
    return label, title or label


def execution_accessor(summary: Dict[str, Any], registry: "EntityTypeRegistry"):
    """执行记录: "<父记录名> run"，缺失时退回 title/status"""
    parent = _text(summary.get("parent_name"))
    if parent is not None:
        value = f"{parent} run"
        return value, value
    return first_field("title", "status")(summary, registry)


class EntityTypeRegistry:
    """
    实体类型注册表

    只负责查找：解析类型标签、为图谱节点生成 label/title。
    """

    def __init__(self, highlight_title_length: int = 50):
        self.highlight_title_length = highlight_title_length
        self._descriptors: Dict[EntityType, EntityTypeDescriptor] = {}

    def register(self, descriptor: EntityTypeDescriptor) -> "EntityTypeRegistry":
        self._descriptors[descriptor.entity_type] = descriptor
        return self

    def get(self, entity_type: Union[EntityType, str]) -> Optional[EntityTypeDescriptor]:
        try:
            return self._descriptors.get(EntityType(entity_type))
        except ValueError:
            return None

    @property
    def types(self) -> List[EntityType]:
        return list(self._descriptors.keys())

    def parse(self, value: Union[EntityType, str, None], field: str = "entity_type") -> EntityType:
        """
        解析实体类型标签

        Raises:
            ValidationError: 标签未注册
        """
        try:
            entity_type = EntityType(value)
        except ValueError:
            entity_type = None

        if entity_type is None or entity_type not in self._descriptors:
            valid = ", ".join(t.value for t in self._descriptors)
            raise ValidationError(
                f"无效的实体类型: {value}，可选值: {valid}",
                field=field,
            )
        return entity_type

    def describe(
        self,
        entity_type: Union[EntityType, str],
        entity_id: str,
        summary: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, str]:
        """
        生成节点展示信息

        摘要缺失、字段缺失或格式异常时退回 "<type> <id>"，不抛异常。
        """
        type_value = entity_type.value if isinstance(entity_type, EntityType) else str(entity_type)
        fallback = f"{type_value} {entity_id}"

        descriptor = self.get(entity_type)
        if descriptor is None or not isinstance(summary, dict):
            return {"label": fallback, "title": fallback}

        try:
            label, title = descriptor.accessor(summary, self)
        except (TypeError, ValueError, KeyError, AttributeError) as e:
            logger.debug(f"实体摘要格式异常: {type_value}:{entity_id}, {e}")
            label, title = None, None

        return {"label": label or fallback, "title": title or fallback}


def create_default_registry(highlight_title_length: int = 50) -> EntityTypeRegistry:
    """创建包含全部内置类型的注册表"""
    registry = EntityTypeRegistry(highlight_title_length=highlight_title_length)
    for descriptor in (
        EntityTypeDescriptor(EntityType.NOTE, first_field("title")),
        EntityTypeDescriptor(EntityType.HIGHLIGHT, highlight_accessor),
        EntityTypeDescriptor(EntityType.DATABASE_ENTRY, first_field("name")),
        EntityTypeDescriptor(EntityType.PROJECT, first_field("title", "name")),
        EntityTypeDescriptor(EntityType.EXPERIMENT, first_field("title", "name")),
        EntityTypeDescriptor(EntityType.PROTOCOL, first_field("name", "title")),
        EntityTypeDescriptor(EntityType.PROTOCOL_EXECUTION, execution_accessor),
        EntityTypeDescriptor(EntityType.RECIPE, first_field("name", "title")),
        EntityTypeDescriptor(EntityType.RECIPE_EXECUTION, execution_accessor),
        EntityTypeDescriptor(EntityType.TABLE, first_field("name", "title")),
    ):
        registry.register(descriptor)
    return registry


# 全局实例
_registry: Optional[EntityTypeRegistry] = None


def get_entity_registry() -> EntityTypeRegistry:
    """获取全局实体类型注册表"""
    global _registry
    if _registry is None:
        from .config import get_link_hub_settings
        _registry = create_default_registry(
            highlight_title_length=get_link_hub_settings().highlight_title_length,
        )
    return _registry
