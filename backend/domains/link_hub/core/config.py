"""
Link Hub 配置管理（基于 pydantic-settings）

所有配置项均可通过 LINK_HUB_ 前缀的环境变量覆盖，例如:
    LINK_HUB_STORE_BACKEND=memory
    LINK_HUB_GRAPH_MAX_NODES=500
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LinkHubSettings(BaseSettings):
    """关联图谱配置"""
    model_config = SettingsConfigDict(
        env_prefix="LINK_HUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 存储
    store_backend: Literal["postgres", "memory"] = Field(
        default="postgres", description="关联存储后端"
    )

    # 分页
    default_page_size: int = Field(default=10, ge=1, description="默认每页数量")
    max_page_size: int = Field(default=100, ge=1, description="每页数量上限")

    # 搜索
    search_default_limit: int = Field(default=10, ge=1, description="搜索默认返回数量")

    # 扁平图谱
    graph_default_cap: int = Field(default=100, ge=1, description="未指定深度时的关联数上限")
    graph_depth_multiplier: int = Field(default=10, ge=1, description="深度到关联数上限的倍数")

    # 逐跳扩展
    graph_default_depth: int = Field(default=2, ge=1, description="默认扩展跳数")
    graph_max_depth: int = Field(default=10, ge=1, description="扩展跳数上限")
    graph_max_nodes: int = Field(default=200, ge=1, description="扩展节点预算")
    graph_max_edges: int = Field(default=500, ge=1, description="扩展边预算")

    # 节点展示
    highlight_title_length: int = Field(default=50, ge=1, description="高亮标题截断长度")
    summaries_enabled: bool = Field(default=True, description="是否查询实体摘要")

    @model_validator(mode="after")
    def validate_ranges(self) -> "LinkHubSettings":
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size 不能大于 max_page_size")
        if self.graph_default_depth > self.graph_max_depth:
            raise ValueError("graph_default_depth 不能大于 graph_max_depth")
        return self


@lru_cache
def get_link_hub_settings() -> LinkHubSettings:
    """获取缓存的配置实例"""
    return LinkHubSettings()
