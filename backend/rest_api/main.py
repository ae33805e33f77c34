"""
REST API main application.
Entry point for the FastAPI REST server.
"""

from fastapi import FastAPI

from shared.config.settings import settings
from shared.security.rate_limit import limiter
from rest_api.core.cors import configure_cors
from rest_api.core.exception_handlers import register_exception_handlers
from rest_api.core.lifespan import lifespan
from rest_api.core.middlewares import register_middlewares
from rest_api.routers.public import health_router
from rest_api.routers.diner import cart_router, orders_router, sessions_router
from rest_api.routers.staff import (
    orders_router as staff_orders_router,
    sessions_router as staff_sessions_router,
    tables_router as staff_tables_router,
)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Table Cart REST API",
        description="Shared table cart, order placement and table sessions",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Rate limiting
    app.state.limiter = limiter

    register_exception_handlers(app)
    configure_cors(app)
    register_middlewares(app)

    app.include_router(health_router)
    app.include_router(sessions_router)
    app.include_router(cart_router)
    app.include_router(orders_router)
    app.include_router(staff_sessions_router)
    app.include_router(staff_orders_router)
    app.include_router(staff_tables_router)
    return app


app = create_app()


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "rest_api.main:app",
        host="0.0.0.0",
        port=settings.rest_api_port,
        reload=settings.debug,
    )
