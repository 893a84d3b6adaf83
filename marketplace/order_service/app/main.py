from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from marketplace.common import (
    DEFAULT_APP_NAME,
    ServiceSettings,
    build_app,
    close_redis_connections,
    configure_logging,
    create_engine,
    dispose_engines,
    get_session_factory,
    resolve_database_url,
    resolve_redis,
)
from marketplace.common.kafka import KafkaProducerStub

from .api.carts import router as carts_router
from .api.coupons import router as coupons_router
from .api.health import router as health_router
from .api.orders import router as orders_router
from .cache import OrderListingCache
from .errors import OrderServiceError
from .events import OrderEventPublisher
from .models import Base
from .services import OrderService

SERVICE_NAME = "Order Service"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./marketplace.db"


async def _handle_order_error(request: Request, exc: OrderServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "kind": exc.kind, **exc.context},
    )


def create_app(settings: ServiceSettings | None = None) -> FastAPI:
    """Create the Order Service FastAPI application."""

    resolved_settings = settings or ServiceSettings()
    if resolved_settings.app_name == DEFAULT_APP_NAME:
        resolved_settings = resolved_settings.model_copy(update={"app_name": SERVICE_NAME})
    configure_logging(resolved_settings)
    database_url = resolve_database_url(resolved_settings, DEFAULT_DATABASE_URL)
    session_factory = get_session_factory(
        database_url,
        isolation_level=resolved_settings.transaction_isolation_level,
    )
    redis_client = resolve_redis(resolved_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        kafka_producer: KafkaProducerStub | None = None
        app.state.session_factory = session_factory
        try:
            if resolved_settings.create_schema_on_startup:
                async with create_engine(database_url).begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
            kafka_producer = KafkaProducerStub(bootstrap_servers=resolved_settings.kafka_bootstrap_servers)
            await kafka_producer.connect()
            order_cache = OrderListingCache(redis_client, ttl_seconds=resolved_settings.order_cache_ttl_seconds)
            app.state.kafka_producer = kafka_producer
            app.state.order_cache = order_cache
            app.state.order_service = OrderService(
                session_factory,
                publisher=OrderEventPublisher(kafka_producer),
                cache=order_cache,
            )
            yield
        finally:
            app.state.session_factory = None  # type: ignore[assignment]
            app.state.order_service = None
            app.state.order_cache = None
            app.state.kafka_producer = None
            if kafka_producer is not None:
                await kafka_producer.close()
            await dispose_engines()
            if redis_client is not None:
                await close_redis_connections()

    app = build_app(resolved_settings, lifespan=lifespan)
    app.add_exception_handler(OrderServiceError, _handle_order_error)  # type: ignore[arg-type]
    app.include_router(health_router)
    app.include_router(orders_router)
    app.include_router(carts_router)
    app.include_router(coupons_router)
    return app


app = create_app()
