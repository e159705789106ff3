"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import authenticate
from api.middleware import ExceptionGuardMiddleware, RequestIDMiddleware, SecurityMiddleware
from api.routes import account
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from core.security import cors_options
from infrastructure.database import create_tables, engine


configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 仅开发环境自动建表，生产环境应使用迁移
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    logger.info(
        "application_started",
        environment=settings.ENVIRONMENT,
        maintenance_mode=settings.MAINTENANCE_MODE,
    )
    yield
    await engine.dispose()
    logger.info("application_shutdown", message="Application shutdown")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        # debug 模式会让 Starlette 直接返回堆栈页面，错误体统一由异常处理器生成
        debug=False,
        lifespan=lifespan,
        # 认证由 SecurityMiddleware 在路由前完成，此处读取其结果并声明 OpenAPI 安全方案
        dependencies=[Depends(authenticate)],
    )

    # 中间件执行顺序：后添加的先执行
    # CORS -> RequestID -> ExceptionGuard -> Security -> 路由
    app.add_middleware(SecurityMiddleware)
    app.add_middleware(ExceptionGuardMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(CORSMiddleware, **cors_options())

    register_exception_handlers(app)

    app.include_router(account.router, prefix="/api/v1")

    @app.get("/", tags=["Root"])
    async def root():
        """API根路径"""
        return success_response(
            data={
                "name": settings.PROJECT_NAME,
                "version": settings.VERSION,
            },
            message="Welcome",
        )

    @app.get("/health", tags=["Health"])
    async def health_check():
        """健康检查端点（公开）"""
        return success_response(data={"status": "healthy"}, message="OK")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
