# expo_admin/core/logging.py
# 日志配置模块
#
# 功能说明：
# 1. 控制台彩色输出（开发）或每行一个 JSON（生产），由 LOG_FORMAT 决定
# 2. 结构化上下文：logger.info("...", extra={"extra_data": {...}})
#    彩色格式追加为 key=value，JSON 格式放在 "extra" 字段
# 3. HTTP 请求日志中间件，健康检查只记 DEBUG
#
# 使用方法：
#   from expo_admin.core.logging import get_logger
#   logger = get_logger(__name__)
#   logger.info("批量导入完成", extra={"extra_data": {"success": 2}})

import logging
import sys
import json
import time
from datetime import datetime
from typing import Any, Optional, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from expo_admin.core.config import settings


RESET = "\033[0m"
CYAN = "\033[36m"
GRAY = "\033[90m"

LEVEL_COLORS = {
    "DEBUG": "\033[34m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}

# 请求日志中只记 DEBUG 的路径（负载均衡探活很频繁）
QUIET_PATHS = ("/health", "/health/detailed")


def _extra_data(record: logging.LogRecord) -> Optional[dict[str, Any]]:
    data = getattr(record, "extra_data", None)
    return data if isinstance(data, dict) and data else None


class ColoredFormatter(logging.Formatter):
    """
    彩色日志格式化器（开发环境使用）

    输出格式：
    2026-01-30 12:00:00 | INFO     | expo_admin.services.location_import_service:_bulk_import_impl:295 - 批量导入完成 success=2 failed=0
    """

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def _paint(self, color: str, text: str) -> str:
        return f"{color}{text}{RESET}" if self.use_color else text

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        level = f"{record.levelname:8}"
        location = f"{record.name}:{record.funcName}:{record.lineno}"

        formatted = (
            f"{self._paint(CYAN, timestamp)} | "
            f"{self._paint(LEVEL_COLORS.get(record.levelname, RESET), level)} | "
            f"{self._paint(GRAY, location)} - "
            f"{record.getMessage()}"
        )

        extra = _extra_data(record)
        if extra:
            pairs = " ".join(f"{key}={value}" for key, value in extra.items())
            formatted += " " + self._paint(GRAY, pairs)

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


class JSONFormatter(logging.Formatter):
    """JSON 日志格式化器（生产环境使用），每行一个对象"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        extra = _extra_data(record)
        if extra:
            log_data["extra"] = extra

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # 上下文里可能有 datetime 等对象，统一转成字符串
        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    初始化日志系统

    应用启动时调用一次（expo_admin/main.py），CLI 脚本入口同样调用。

    Args:
        level: 日志级别，不传时使用 LOG_LEVEL（脚本的 --verbose 传 DEBUG）
        log_format: "console" 或 "json"，不传时使用 LOG_FORMAT
    """
    level = level or settings.LOG_LEVEL
    log_format = log_format or settings.LOG_FORMAT

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ColoredFormatter(use_color=sys.stdout.isatty()))
    root_logger.addHandler(handler)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.DEBUG else logging.WARNING)
    # httpx 用于访问 Meilisearch，每个请求一条 INFO 太吵
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    HTTP 请求日志中间件

    输出示例：
    INFO | POST /admin/locations/bulk-import -> 200 (845ms)

    2xx/3xx 记 INFO，4xx 记 WARNING，5xx 和未处理异常记 ERROR；
    QUIET_PATHS 中的路径成功时只记 DEBUG。
    """

    def __init__(self, app, logger: Optional[logging.Logger] = None):
        super().__init__(app)
        self.logger = logger or get_logger("expo_admin.request")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start = time.perf_counter()
        method = request.method
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception as e:
            duration = (time.perf_counter() - start) * 1000
            self.logger.error(f"{method} {path} -> 500 ERROR ({duration:.0f}ms) - {e}")
            raise

        duration = (time.perf_counter() - start) * 1000
        status_code = response.status_code

        target = f"{path}?{request.url.query}" if request.url.query else path
        message = f"{method} {target} -> {status_code} ({duration:.0f}ms)"
        extra = {"extra_data": {"method": method, "path": path, "status_code": status_code}}

        if status_code >= 500:
            self.logger.error(message, extra=extra)
        elif status_code >= 400:
            self.logger.warning(message, extra=extra)
        elif path in QUIET_PATHS:
            self.logger.debug(message, extra=extra)
        else:
            self.logger.info(message, extra=extra)

        return response
