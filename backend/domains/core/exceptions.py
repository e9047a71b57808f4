"""
统一异常体系

服务层只抛出 ApplicationError 子类，路由层按 category 映射 HTTP 状态码:
- ValidationError: 参数有误，修正后可重试（400）
- NotFoundError: 关联不存在（404）
- StorageError: 持久化失败（500）
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(str, Enum):
    """错误分类"""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STORAGE = "storage"
    INTERNAL = "internal"


_HTTP_STATUS = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.STORAGE: 500,
    ErrorCategory.INTERNAL: 500,
}


@dataclass
class ApplicationError(Exception):
    """
    应用层异常基类

    使用示例:
        raise LinkNotFoundError(link_id)
        raise ValidationError("无效的实体类型: foo", field="source_type")
        raise StorageError("创建关联失败", cause=exc)
    """
    code: str                                   # 机器可读错误码
    message: str                                # 面向调用方的描述
    category: ErrorCategory = ErrorCategory.INTERNAL
    details: Optional[Dict[str, Any]] = None
    cause: Optional[Exception] = None           # 底层异常，仅用于日志

    def __post_init__(self):
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    @property
    def http_status_code(self) -> int:
        return _HTTP_STATUS.get(self.category, 500)


class NotFoundError(ApplicationError):
    """资源不存在"""
    def __init__(self, resource_type: str, resource_id: Any):
        super().__init__(
            code="NOT_FOUND",
            message=f"{resource_type}不存在: {resource_id}",
            category=ErrorCategory.NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id)},
        )
        self.resource_id = resource_id


class ValidationError(ApplicationError):
    """
    参数校验失败

    field 指出出错的参数名（如 source_type、limit），写入 details。
    """
    def __init__(
        self,
        message: str,
        errors: Optional[List[Dict[str, Any]]] = None,
        field: Optional[str] = None,
    ):
        details: Dict[str, Any] = {}
        if field:
            details["field"] = field
        if errors:
            details["validation_errors"] = errors
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            category=ErrorCategory.VALIDATION,
            details=details or None,
        )
        self.field = field
        self.errors = errors


class StorageError(ApplicationError):
    """存储层失败（连接断开、语句出错、约束冲突等）"""
    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        code: str = "STORAGE_ERROR",
    ):
        super().__init__(
            code=code,
            message=message,
            category=ErrorCategory.STORAGE,
            details=details,
            cause=cause,
        )


class ConfigurationError(ApplicationError):
    """配置错误，config_key 为出错的配置项"""
    def __init__(self, config_key: str, message: str):
        super().__init__(
            code="CONFIGURATION_ERROR",
            message=f"配置错误 [{config_key}]: {message}",
            category=ErrorCategory.INTERNAL,
            details={"config_key": config_key},
        )
        self.config_key = config_key


# ==================== 关联 ====================

class LinkNotFoundError(NotFoundError):
    """关联不存在"""
    def __init__(self, link_id: str):
        super().__init__("关联", link_id)
        self.link_id = link_id


class BidirectionalLinkError(StorageError):
    """
    双向关联部分写入

    反向关联失败后正向关联也没能删除，details.forward_id 是残留的正向关联，
    需要调用方自行清理。
    """
    def __init__(self, forward_id: str, message: str, cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            details={"forward_id": forward_id, "partial": True},
            cause=cause,
            code="BIDIRECTIONAL_LINK_PARTIAL",
        )
        self.forward_id = forward_id


__all__ = [
    "ErrorCategory",
    "ApplicationError",
    "NotFoundError",
    "ValidationError",
    "StorageError",
    "ConfigurationError",
    "LinkNotFoundError",
    "BidirectionalLinkError",
]
