import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.requests import Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from food_order.core.config import settings
from food_order.core.errors import CommerceError

# 1. Infrastructure & Domain Imports
from food_order.domain.models import Address, PaymentMethod
from food_order.infrastructure import database
from food_order.infrastructure.cache import build_cache
from food_order.infrastructure.repositories.order_repository import SqlOrderRepository
from food_order.application import cache_keys
from food_order.application.cart_service import CartStore
from food_order.application.exclusivity import DefaultableCollection
from food_order.application.order_engine import OrderEngine
from food_order.application.review_service import ReviewService
from food_order.interfaces import cart_routes, order_routes, review_routes
from food_order.interfaces.defaultable_routes import build_defaultable_router
from food_order.interfaces.schemas import (
    AddressIn,
    AddressOut,
    AddressUpdateIn,
    PaymentMethodIn,
    PaymentMethodOut,
    PaymentMethodUpdateIn,
)

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


# ---------------------------------------------------------
# DATABASE CONNECTION (With Retry Logic)
# ---------------------------------------------------------
def init_database(engine, retries: int = None, wait_seconds: float = None) -> bool:
    retries = settings.DB_CONNECT_RETRIES if retries is None else retries
    wait_seconds = settings.DB_CONNECT_WAIT_SECONDS if wait_seconds is None else wait_seconds

    for attempt in range(retries):
        try:
            logger.info(f"🔄 Attempting DB connection ({attempt + 1}/{retries})...")
            database.Base.metadata.create_all(bind=engine)
            logger.info("✅ DB Connected and Tables Created.")
            return True
        except OperationalError as e:
            logger.warning(f"⚠️ DB not ready yet ({e.orig}). Waiting {wait_seconds}s...")
            time.sleep(wait_seconds)
    logger.error("❌ Could not connect to DB after retries.")
    return False


def create_app(session_factory=None, cache=None, engine=None) -> FastAPI:
    """
    Composition root. Tests pass their own session factory, engine and cache;
    production builds everything from settings.
    """
    engine = engine or database.engine
    session_factory = session_factory or database.SessionLocal
    cache = cache or build_cache()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.db_ready = init_database(engine)
        cache.start()
        try:
            yield
        finally:
            cache.stop()

    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)
    app.state.db_ready = False

    # ---------------------------------------------------------
    # COMPOSITION ROOT
    # ---------------------------------------------------------
    app.state.cache = cache
    app.state.cart_store = CartStore(session_factory=session_factory)
    app.state.order_engine = OrderEngine(SqlOrderRepository(), cache, session_factory=session_factory)
    app.state.addresses = DefaultableCollection(
        Address, cache, cache_keys.ADDRESSES, "Address", session_factory=session_factory
    )
    app.state.payment_methods = DefaultableCollection(
        PaymentMethod, cache, cache_keys.PAYMENT_METHODS, "Payment method", session_factory=session_factory
    )
    app.state.review_service = ReviewService(cache, session_factory=session_factory)

    # ---------------------------------------------------------
    # ERRORS & REQUEST LOGGING
    # ---------------------------------------------------------
    @app.exception_handler(CommerceError)
    async def commerce_error_handler(request: Request, exc: CommerceError):
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"❌ Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "INTERNAL_ERROR", "message": "Internal server error"},
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{request.method} {request.url.path} {response.status_code} ({elapsed_ms:.1f}ms)")
        return response

    # Include Routers
    app.include_router(cart_routes.router)
    app.include_router(order_routes.router)
    app.include_router(
        build_defaultable_router(
            path="/addresses",
            tag="addresses",
            state_attr="addresses",
            cache_prefix=cache_keys.ADDRESSES,
            create_schema=AddressIn,
            update_schema=AddressUpdateIn,
            out_schema=AddressOut,
        )
    )
    app.include_router(
        build_defaultable_router(
            path="/payment-methods",
            tag="payment-methods",
            state_attr="payment_methods",
            cache_prefix=cache_keys.PAYMENT_METHODS,
            create_schema=PaymentMethodIn,
            update_schema=PaymentMethodUpdateIn,
            out_schema=PaymentMethodOut,
        )
    )
    app.include_router(review_routes.router)

    @app.get("/health")
    def health_check():
        status = "active" if app.state.db_ready else "degraded"
        return {"status": status, "system": settings.PROJECT_NAME, "cache": type(cache).__name__}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("food_order.main:app", host="0.0.0.0", port=8000)
