"""
Nihemart storefront gateway

FastAPI 入口：挂载 /api 下的支付代理、KPay 回调转发、管理端报表与订单详情
透传。订单、支付会话与系统设置都由后端 REST 服务持久化，本服务不持有数据库。
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.exceptions import RedisError

from api.middleware import LocaleMiddleware, LoggingMiddleware, RequestIDMiddleware
from api.middleware.request_id import HEADER_NAME as REQUEST_ID_HEADER
from api.routes import admin, orders, payments, webhooks
from core.config import settings
from core.exceptions import register_exception_handlers
from core.i18n import t
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from infrastructure.cache import init_redis_cache, shutdown_redis_cache


configure_logging()
logger = get_logger(__name__)

API_PREFIX = "/api"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 未配置或连不上 Redis 时，幂等键退回进程内存储
    redis_ready = False
    if settings.redis.url:
        try:
            await init_redis_cache()
            redis_ready = True
        except (RedisError, OSError) as exc:
            logger.error("redis_cache_init_failed", error=str(exc))

    logger.info(
        "application_started",
        backend=settings.API_BASE_URL,
        environment=settings.ENVIRONMENT,
        shared_idempotency=redis_ready,
    )
    yield

    if redis_ready:
        await shutdown_redis_cache()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Nihemart storefront gateway: KPay payment proxies, webhook relay and admin reporting",
)

# add_middleware 后加的在外层：请求依次经过 CORS -> RequestID -> Logging -> Locale
app.add_middleware(LocaleMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)

register_exception_handlers(app)

# 路径与 Next.js 时代的 /api/* 保持一致
for module in (payments, webhooks, admin, orders):
    app.include_router(module.router, prefix=API_PREFIX)


@app.get("/", tags=["Root"])
async def root():
    return success_response(
        data={"name": settings.PROJECT_NAME, "version": settings.VERSION, "docs": "/docs"},
        message=t("Welcome to the Nihemart storefront gateway"),
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return success_response(data={"status": "healthy"}, message=t("Service is healthy"))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
