"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import checkout as checkout_routes
from api.routes import payments as payments_routes
from api.routes import ws as ws_routes
from application.services.payment_coordinator import (
    CoordinatorFactory,
    PaymentCoordinator,
    PaymentCoordinatorRegistry,
)
from application.services.payment_service import PaymentService
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from core.settings import payment_settings
from domain.shipment.repository import ShipmentRepository
from infrastructure.checkout import (
    CheckoutScriptLoader,
    FrameVisibilityProbe,
    HeadlessCheckoutHost,
    HttpScriptFetcher,
    RemoteCheckoutWidget,
)
from infrastructure.database import create_tables, dispose_engine, get_session_factory
from infrastructure.external.cache import init_redis_client, shutdown_redis_client
from infrastructure.external.payments import get_order_gateway
from infrastructure.repositories.shipment_repository import (
    InMemoryShipmentRepository,
    SQLAlchemyShipmentRepository,
)
from infrastructure.shared_storage import open_shared_storage


configure_logging()
logger = get_logger(__name__)


def build_coordinator_factory(repository: ShipmentRepository, *, fetch_scripts: bool = True) -> CoordinatorFactory:
    """Wire one tab per profile: shared storage view, headless page and the remote widget."""
    config = settings.checkout

    async def factory(profile_id: str) -> PaymentCoordinator:
        storage = await open_shared_storage(profile_id)
        host = HeadlessCheckoutHost(
            fetcher=HttpScriptFetcher(timeout_s=config.script_timeout_s) if fetch_scripts else None,
            globals_on_load={config.script_global: RemoteCheckoutWidget},
        )
        return PaymentCoordinator(
            storage=storage,
            host=host,
            repository=repository,
            script_loader=CheckoutScriptLoader(host, config),
            visibility_probe=FrameVisibilityProbe(host, config.frame_src_pattern),
            config=config,
            key_id=payment_settings.razorpay.key_id,
        )

    return factory


async def _init_repository() -> ShipmentRepository:
    if not settings.database.url:
        logger.warning("shipment_repository_in_memory", message="DATABASE__URL not set, orders kept in memory")
        return InMemoryShipmentRepository()
    if settings.DEBUG:
        # 开发环境自动建表；生产应使用迁移
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    return SQLAlchemyShipmentRepository(get_session_factory())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    if settings.redis.url:
        try:
            await init_redis_client()
            logger.info("redis_cache_initialized", message="Redis cache initialized")
        except Exception as exc:
            logger.error("redis_cache_init_failed", error=str(exc))

    repository = await _init_repository()
    app.state.shipment_repository = repository
    app.state.coordinators = PaymentCoordinatorRegistry(build_coordinator_factory(repository))

    try:
        app.state.payment_service = PaymentService(gateway=get_order_gateway())
        logger.info("payment_gateway_initialized", provider=payment_settings.default_provider)
    except RuntimeError as exc:
        app.state.payment_service = None
        logger.warning("payment_gateway_not_configured", error=str(exc))

    yield

    await app.state.coordinators.aclose()
    if app.state.payment_service is not None:
        await app.state.payment_service.aclose()
    if settings.database.url:
        await dispose_engine()
    if settings.redis.url:
        await shutdown_redis_client()
        logger.info("redis_cache_shutdown", message="Redis cache shutdown")
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Shipment checkout: payment lifecycle, cross-tab state and recovery",
)

# 添加中间件（注意顺序：从下往上执行）
app.add_middleware(RequestIDMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(payments_routes.router, prefix="/api")
app.include_router(checkout_routes.router, prefix="/api")
app.include_router(ws_routes.router, prefix="/api")


@app.get("/", tags=["Root"])
async def root():
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "redoc": "/redoc",
        },
        message="Welcome",
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return success_response(data={"status": "healthy"}, message="OK")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
