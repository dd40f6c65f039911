# expo_admin/main.py
# FastAPI 应用入口
#
# 功能说明：
# 1. 创建 FastAPI 应用实例
# 2. 配置中间件（CORS、日志）
# 3. 注册路由
# 4. 管理应用生命周期（启动/关闭）
# 5. 把地区业务异常转换为 HTTP 状态码
#
# 启动命令：
#   uvicorn expo_admin.main:app --reload --host 0.0.0.0 --port 8000
#
# API 文档：
#   - Swagger UI: http://localhost:8000/docs
#   - ReDoc: http://localhost:8000/redoc

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from expo_admin.core.config import settings
from expo_admin.core.database import init_db, close_db
from expo_admin.core.exceptions import LocationError
from expo_admin.core.logging import setup_logging, get_logger, RequestLoggingMiddleware
from expo_admin.storage.search_index import search_index_sync

# 导入路由模块
from expo_admin.api import health
from expo_admin.api import locations as locations_router


# 初始化日志系统（在应用启动前）
setup_logging()

# 获取当前模块的 logger
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理

    - 启动时：建表（仅开发环境）、设置搜索索引
    - 关闭时：关闭数据库连接池
    """
    # ==================== 启动阶段 ====================
    logger.info(f"正在启动 {settings.APP_NAME}...")

    # 开发环境：不使用 Alembic 迁移时自动建表
    if settings.DB_AUTO_CREATE:
        await init_db()
        logger.info("数据库初始化完成")

    # 搜索索引设置（失败只记录警告，不阻止启动）
    if search_index_sync.enabled:
        await search_index_sync.ensure_index()
    else:
        logger.info("未配置 MEILISEARCH_URL，邮编搜索使用数据库前缀搜索")

    logger.info(f"{settings.APP_NAME} 启动完成")
    logger.info("API 文档: http://localhost:8000/docs")

    yield

    # ==================== 关闭阶段 ====================
    logger.info("正在关闭...")

    try:
        await close_db()
        logger.info("数据库连接已关闭")
    except Exception as e:
        logger.warning(f"数据库关闭时出错: {e}")

    logger.info("清理完成，应用已关闭")


# ==================== 创建 FastAPI 应用 ====================

app = FastAPI(
    title=settings.APP_NAME,
    description="""
    展会管理后台 - 地区数据服务

    ## 功能模块

    - **地区管理**: 国家 / 州省 / 城市 / 邮编 四级数据维护
    - **批量导入**: 扁平数据导入，自动创建层级并去重
    - **使用次数**: 按访客报名数据重算
    - **邮编查询**: 按邮编查询完整层级、自动补全
    """,
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ==================== 中间件配置 ====================

# CORS 中间件（跨域资源共享）
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],        # 生产环境应该配置具体的域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 请求日志中间件
# 记录每个请求的方法、路径、耗时、状态码
app.add_middleware(RequestLoggingMiddleware)


# ==================== 全局异常处理 ====================

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Methods": "*",
    "Access-Control-Allow-Headers": "*",
}

# 业务错误码 → HTTP 状态码
ERROR_STATUS_CODES = {
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "CONFLICT": status.HTTP_409_CONFLICT,
    "VALIDATION_ERROR": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "DEPENDENCY_EXISTS": status.HTTP_400_BAD_REQUEST,
}


@app.exception_handler(LocationError)
async def location_exception_handler(request: Request, exc: LocationError):
    """处理地区业务异常"""
    return JSONResponse(
        status_code=ERROR_STATUS_CODES.get(exc.error_code, status.HTTP_400_BAD_REQUEST),
        content={
            "detail": exc.message,
            "error_code": exc.error_code,
            "context": exc.context,
        },
        headers=CORS_HEADERS,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """处理 HTTP 异常，确保包含 CORS 头"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=CORS_HEADERS,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """处理请求验证错误"""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_errors(exc)},
        headers=CORS_HEADERS,
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """处理未捕获的异常"""
    logger.exception(f"未处理的异常: {type(exc).__name__}: {str(exc)}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": f"服务器内部错误: {str(exc)}"},
        headers=CORS_HEADERS,
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    """pydantic 错误中的 ctx 可能包含异常对象，转成字符串"""
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        errors.append(error)
    return errors


# ==================== 注册路由 ====================

# 健康检查路由
# - GET /health - 基础健康检查
# - GET /health/detailed - 详细健康检查
app.include_router(health.router)

# 地区管理路由
# - /admin/locations/{countries|states|cities|pincodes} - 增删改查
# - POST /admin/locations/bulk-import - 批量导入
# - GET /admin/locations/export - 导出 CSV
# - POST /admin/locations/{level}/recalculate-usage - 重算使用次数
# - GET /admin/locations/pincode/{code} - 按邮编查询层级
app.include_router(locations_router.router)


# ==================== 根路由 ====================

@app.get("/", tags=["Root"])
async def root():
    """
    根路由

    返回应用基本信息和文档链接
    """
    return {
        "app": settings.APP_NAME,
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
