from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from codeshot.api.v1 import snapshots
from codeshot.core.config import get_settings
from codeshot.core.errors import BaseApplicationError
from codeshot.core.logging import configure_logging, get_logger
from codeshot.core.middleware import application_error_handler, error_handler
from codeshot.db import dispose_engine, init_db
from codeshot.services import ServiceFactory

settings = get_settings()

# 配置结构化日志
configure_logging(settings.log_level, settings.json_logs)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info(
        "application_starting",
        version=settings.version,
        api_prefix=settings.api_v1_prefix,
        cache_backend="redis" if settings.uses_redis else "memory",
        ai_scoring=bool(settings.openai_api_key),
    )

    try:
        await init_db()
        logger.info("application_started")
        yield
    finally:
        logger.info("application_stopping")
        await ServiceFactory.shutdown()
        await dispose_engine()


app = FastAPI(
    title=settings.project_name,
    version=settings.version,
    openapi_url=f"{settings.api_v1_prefix}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# 错误处理
app.add_exception_handler(BaseApplicationError, application_error_handler)
app.add_exception_handler(Exception, error_handler)

# 路由注册
app.include_router(snapshots.router)

# Prometheus监控
Instrumentator().instrument(app).expose(app)


@app.get("/")
async def root():
    """根路径"""
    return {
        "name": settings.project_name,
        "version": settings.version,
        "docs": "/docs",
        "api_prefix": settings.api_v1_prefix,
    }


@app.get(f"{settings.api_v1_prefix}")
async def api_root():
    """API根路径"""
    return {
        "version": "v1",
        "endpoints": {
            "snapshots": f"{settings.api_v1_prefix}/snapshots",
        }
    }
