"""Marketplace FastAPI application.

Usage:
    uvicorn marketplace.app:create_app --factory --host 0.0.0.0 --port 8000

PROTEAN_ENV selects the domain.toml overlay (memory stores by default,
PostgreSQL under ``production``).
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from marketplace.domain import marketplace
from marketplace.utils.logging import add_context, clear_context


def create_app(init_domain: bool = True) -> FastAPI:
    if init_domain:
        marketplace.init()

    # Routers import domain elements, so they load after the domain is ready
    from marketplace.api import ROUTERS, register_error_handlers

    app = FastAPI(
        title="Marketplace API",
        description="Carts, checkout, orders and payments",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        """Push the marketplace domain context and bind request details to the logs."""
        add_context(path=request.url.path, user_id=request.headers.get("x-user-id"))
        try:
            with marketplace.domain_context():
                return await call_next(request)
        finally:
            clear_context()

    for router in ROUTERS:
        app.include_router(router)
    register_error_handlers(app)

    @app.get("/health")
    async def health():
        return JSONResponse(content={"status": "ok", "domain": marketplace.name})

    return app
