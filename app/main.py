import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.agencies.router import router as agencies_router
from app.api.v1.checkout.router import router as checkout_router
from app.api.v1.coupons.router import router as coupons_router
from app.api.v1.subscription_plans.router import router as subscription_plans_router
from app.api.v1.subscriptions.router import router as subscriptions_router
from app.api.v1.trials.router import router as trials_router
from app.api.v1.webhooks.router import router as webhooks_router
from app.core.config import settings
from app.core.logging_config import configure_logging

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    configure_logging(settings.log_level, settings.log_json)

    app = FastAPI(title="Agency Billing Backend")

    # CORS: allow the agency web app to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Error-Code"],
    )

    # Routers
    app.include_router(subscription_plans_router)
    app.include_router(coupons_router)
    app.include_router(trials_router)
    app.include_router(checkout_router)
    app.include_router(webhooks_router)
    app.include_router(subscriptions_router)
    app.include_router(agencies_router)

    logger.info("Application created", extra={"routes": len(app.routes)})
    return app


app = create_app()
