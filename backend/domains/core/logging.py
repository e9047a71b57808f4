"""
结构化日志配置

基于 structlog，渲染交给标准库 logging 的 ProcessorFormatter 完成，
因此 logging.getLogger(__name__) 与 get_logger() 的输出格式一致:
- 控制台输出（开发环境，LOG_FORMAT=console）
- JSON 格式输出（生产环境，默认）
"""

import logging
import os
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog


class LogFormat(str, Enum):
    """日志格式"""
    JSON = "json"
    CONSOLE = "console"


@dataclass
class LogConfig:
    """日志配置"""
    level: str = "INFO"
    format: LogFormat = LogFormat.JSON
    add_timestamp: bool = True
    service_name: str = "eln-links"

    @classmethod
    def from_env(cls, service_name: str = "eln-links") -> "LogConfig":
        """从环境变量创建配置"""
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        format_str = os.getenv("LOG_FORMAT", "json").lower()

        return cls(
            level=level,
            format=LogFormat.JSON if format_str == "json" else LogFormat.CONSOLE,
            service_name=service_name,
        )


def _add_service(service_name: str):
    def processor(logger, method_name, event_dict):
        event_dict.setdefault("service", service_name)
        return event_dict
    return processor


def _shared_processors(config: LogConfig) -> list:
    processors = [
        _add_service(config.service_name),
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if config.add_timestamp:
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))
    return processors


def configure_logging(config: Optional[LogConfig] = None, service_name: str = "eln-links"):
    """
    配置结构化日志

    Args:
        config: 日志配置，None 则从环境变量读取
        service_name: 服务名称
    """
    if config is None:
        config = LogConfig.from_env(service_name=service_name)

    log_level = getattr(logging, config.level, logging.INFO)

    # 最终渲染由 ProcessorFormatter 完成
    processors = [structlog.stdlib.filter_by_level]
    processors.extend(_shared_processors(config))
    processors.append(structlog.stdlib.ProcessorFormatter.wrap_for_formatter)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if config.format == LogFormat.JSON:
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=_shared_processors(config),
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)
    root_logger.setLevel(log_level)

    # 第三方库日志级别
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    获取结构化日志器

    使用示例:
        logger = get_logger(__name__)
        logger.info("link_created", link_id=link.id, source_type="note")
    """
    return structlog.get_logger(name)


def bind_request_context(request_id: str, **extra):
    """绑定请求上下文到日志"""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    if extra:
        structlog.contextvars.bind_contextvars(**extra)


def clear_request_context():
    """清除请求上下文"""
    structlog.contextvars.clear_contextvars()
