import uvicorn
from fastapi import FastAPI

from entitlement_engine.api.routes.admin_purchases import router as admin_purchases_router
from entitlement_engine.api.routes.admin_redeem_codes import router as admin_redeem_codes_router
from entitlement_engine.api.routes.admin_tenants import router as admin_tenants_router
from entitlement_engine.api.routes.health import router as health_router
from entitlement_engine.api.routes.payment_webhook import router as payment_webhook_router
from entitlement_engine.api.routes.player import router as player_router
from entitlement_engine.core.config import get_settings
from entitlement_engine.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    expose_docs = settings.app_env != "prod"
    app = FastAPI(
        title="Entitlement Engine API",
        version="0.1.0",
        docs_url="/docs" if expose_docs else None,
        redoc_url="/redoc" if expose_docs else None,
        openapi_url="/openapi.json" if expose_docs else None,
    )
    app.include_router(health_router)
    app.include_router(payment_webhook_router)
    app.include_router(player_router)
    app.include_router(admin_redeem_codes_router)
    app.include_router(admin_purchases_router)
    app.include_router(admin_tenants_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "entitlement_engine.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
