"""
结构化日志配置模块 - 使用structlog实现JSON格式日志
Log events are snake_case names with keyword context.
"""
import logging
import sys
from typing import Any

import structlog
from structlog.types import FilteringBoundLogger, Processor


def configure_logging(level: str = "INFO", json_logs: bool = True) -> None:
    """
    配置结构化日志系统

    Args:
        level: 日志级别 (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: 是否输出JSON格式日志
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    processors: list[Processor] = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.format_exc_info,
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )


def get_logger(name: str, **initial_context: Any) -> FilteringBoundLogger:
    """
    获取结构化日志记录器

    Args:
        name: 日志记录器名称（通常使用模块名）
        **initial_context: 初始上下文数据
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger


class LogEvent:
    """标准化的日志事件类型"""

    # Pipeline lifecycle
    GENERATION_STARTED = "snapshot_generation_started"
    GENERATION_COMPLETED = "snapshot_generation_completed"
    GENERATION_FAILED = "snapshot_generation_failed"
    CACHED_SNAPSHOTS_RETURNED = "cached_snapshots_returned"

    # Phases
    CANDIDATES_IDENTIFIED = "candidates_identified"
    CODE_FETCH_COMPLETED = "code_fetch_completed"
    SCORING_COMPLETED = "scoring_completed"
    SNIPPET_RENDERED = "snippet_rendered"
    SNIPPET_RENDER_FAILED = "snippet_render_failed"

    # Caches
    SELECTION_CACHE_HIT = "selection_cache_hit"
    SELECTION_CACHE_MISS = "selection_cache_miss"
    ANALYSIS_CACHE_HIT = "analysis_cache_hit"
    CACHE_EVICTION_FAILED = "cache_eviction_failed"

    # AI scoring
    AI_SCORING_FALLBACK = "ai_scoring_fallback"

    # Staleness
    SNAPSHOTS_MARKED_STALE = "snapshots_marked_stale"
