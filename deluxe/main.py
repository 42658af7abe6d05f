from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from deluxe.core.settings import S
from deluxe.logging_config import setup_logging
from deluxe.metrics import metrics_endpoint, metrics_middleware, set_app_info
from deluxe.routers.checkout import router as checkout_router
from deluxe.routers.creator import router as creator_router
from deluxe.routers.cron import router as cron_router
from deluxe.routers.feed import router as feed_router
from deluxe.routers.me import router as me_router
from deluxe.routers.stories import router as stories_router
from deluxe.routers.webhooks import router as webhooks_router


def create_app() -> FastAPI:
    setup_logging(S.log_level)
    app = FastAPI(title="DeLuxe creator platform", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if S.metrics_enabled:
        app.middleware("http")(metrics_middleware)
        set_app_info(app.title, app.version)
        app.get("/metrics")(metrics_endpoint)

    @app.get("/healthz")
    async def healthz():
        return {"ok": True}

    app.include_router(webhooks_router)
    app.include_router(checkout_router)
    app.include_router(creator_router)
    app.include_router(me_router)
    app.include_router(feed_router)
    app.include_router(stories_router)
    app.include_router(cron_router)

    return app

app = create_app()
