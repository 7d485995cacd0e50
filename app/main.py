from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.settings import S
from app.metrics import METRICS_ENABLED, metrics_endpoint, metrics_middleware, set_app_info
from app.routers.access import router as access_router
from app.routers.admin import router as admin_router
from app.routers.auth import router as auth_router
from app.routers.misc import router as misc_router
from app.routers.webhook import router as webhook_router

def create_app() -> FastAPI:
    app = FastAPI(title="Subscription Access Gate", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[S.public_base_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    if METRICS_ENABLED:
        app.middleware("http")(metrics_middleware)
        set_app_info(app.title, app.version)
        app.get("/metrics")(metrics_endpoint)

    app.include_router(webhook_router)
    app.include_router(access_router)
    app.include_router(admin_router)
    app.include_router(auth_router)
    app.include_router(misc_router)

    return app

app = create_app()
