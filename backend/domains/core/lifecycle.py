"""
服务生命周期管理

关联服务由三部分组成: link_store、summary_provider、link_service。
注册表负责按依赖顺序延迟创建，并在应用关闭时逆序释放连接。

使用示例:
    registry = register_core_services()
    service = registry.get("link_service")

    # 测试中替换存储
    registry.set("link_store", MemoryLinkStore())

    # 应用关闭时
    await registry.shutdown()
"""

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class ServiceDefinition:
    """已注册的服务"""
    name: str
    factory: Callable[[], Any]
    dependencies: list[str] = field(default_factory=list)
    instance: Any | None = None

    @property
    def ready(self) -> bool:
        return self.instance is not None


class ServiceRegistry:
    """
    服务注册表

    FastAPI 的同步依赖在线程池中执行，首个请求可能并发到达，
    因此创建过程在可重入锁内完成，每个服务只会创建一次。
    """

    def __init__(self):
        self._services: dict[str, ServiceDefinition] = {}
        self._ready_order: list[str] = []
        self._lock = threading.RLock()
        self._resolving: list[str] = []

    def register(
        self,
        name: str,
        factory: Callable[[], Any],
        dependencies: list[str] | None = None,
    ) -> "ServiceRegistry":
        """
        注册服务工厂

        Args:
            name: 服务名称
            factory: 无参工厂函数
            dependencies: 创建前需要先就绪的服务

        Returns:
            self，支持链式调用
        """
        with self._lock:
            if name in self._services:
                logger.warning(f"服务 {name} 重复注册，旧定义被替换")
            self._services[name] = ServiceDefinition(
                name=name,
                factory=factory,
                dependencies=list(dependencies or []),
            )
        return self

    def get(self, name: str) -> Any:
        """
        获取服务实例

        Raises:
            KeyError: 服务未注册
            ConfigurationError: 依赖存在环
        """
        with self._lock:
            definition = self._services.get(name)
            if definition is None:
                raise KeyError(f"服务未注册: {name}")
            if definition.ready:
                return definition.instance

            if name in self._resolving:
                chain = " -> ".join(self._resolving + [name])
                raise ConfigurationError("services", f"服务依赖存在环: {chain}")

            self._resolving.append(name)
            try:
                for dependency in definition.dependencies:
                    self.get(dependency)
                definition.instance = definition.factory()
            except Exception as e:
                logger.error(f"服务 {name} 创建失败: {e}")
                raise
            finally:
                self._resolving.pop()

            self._ready_order.append(name)
            logger.debug(f"服务 {name} 已就绪")
            return definition.instance

    def set(self, name: str, instance: Any) -> None:
        """直接注入实例，已有实例会被替换但不会被关闭"""
        with self._lock:
            definition = self._services.get(name)
            if definition is None:
                definition = ServiceDefinition(name=name, factory=lambda: instance)
                self._services[name] = definition
            definition.instance = instance
            if name not in self._ready_order:
                self._ready_order.append(name)

    def reset(self, name: str) -> None:
        """关闭单个服务，下次 get 时重新创建"""
        with self._lock:
            definition = self._services.get(name)
            if definition is None or not definition.ready:
                return
            self._close(definition)
            definition.instance = None
            self._ready_order.remove(name)

    def reset_all(self) -> None:
        """按创建的逆序关闭全部服务"""
        for name in reversed(self.initialized_services):
            self.reset(name)

    async def shutdown(self) -> None:
        """应用关闭时调用，close() 在线程中执行以免阻塞 event loop"""
        logger.info(f"关闭服务: {', '.join(reversed(self._ready_order)) or '无'}")
        for name in reversed(self.initialized_services):
            definition = self._services[name]
            await asyncio.to_thread(self._close, definition)
            definition.instance = None
        with self._lock:
            self._ready_order.clear()
        logger.info("服务已全部关闭")

    @staticmethod
    def _close(definition: ServiceDefinition) -> None:
        close = getattr(definition.instance, "close", None)
        if close is None:
            return
        try:
            close()
        except Exception as e:
            logger.warning(f"服务 {definition.name} 关闭失败: {e}")

    @property
    def registered_services(self) -> list[str]:
        return list(self._services)

    @property
    def initialized_services(self) -> list[str]:
        """按创建顺序排列的已就绪服务"""
        with self._lock:
            return list(self._ready_order)

    def __contains__(self, name: str) -> bool:
        return name in self._services


# ==================== 全局注册表 ====================

_registry: ServiceRegistry | None = None
_registry_lock = threading.Lock()


def get_service_registry() -> ServiceRegistry:
    """获取全局服务注册表"""
    global _registry
    with _registry_lock:
        if _registry is None:
            _registry = ServiceRegistry()
        return _registry


def reset_service_registry() -> None:
    """关闭已创建的服务并换用新的注册表（用于测试）"""
    global _registry
    with _registry_lock:
        previous, _registry = _registry, ServiceRegistry()
    if previous is not None:
        previous.reset_all()


# ==================== 关联服务注册 ====================

def register_core_services() -> ServiceRegistry:
    """
    注册关联服务

    工厂内延迟导入 link_hub，避免 core 与业务包循环导入。
    已注册（包括 set() 注入）的名称保持不变。
    """
    registry = get_service_registry()

    def create_store():
        from domains.link_hub.core.factory import create_link_store
        return create_link_store()

    def create_summaries():
        from domains.link_hub.core.summaries import create_summary_provider
        return create_summary_provider()

    def create_service():
        from domains.link_hub.services import LinkService
        return LinkService(
            store=registry.get("link_store"),
            summary_provider=registry.get("summary_provider"),
        )

    definitions = (
        ("link_store", create_store, None),
        ("summary_provider", create_summaries, None),
        ("link_service", create_service, ["link_store", "summary_provider"]),
    )
    for name, factory, dependencies in definitions:
        if name not in registry:
            registry.register(name, factory, dependencies=dependencies)

    return registry
