from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from src.api.error import ClientError, client_error_handler, validation_error_handler
from src.api.routes import invoices, payments, quota, subscriptions, usage


def create_app(config) -> FastAPI:
    app = FastAPI(
        title="Tenant Billing Service",
        description="Usage metering, quotas, subscriptions, invoicing and payment reconciliation",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=config.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ClientError, client_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(usage.router)
    app.include_router(quota.router)
    app.include_router(subscriptions.router)
    app.include_router(invoices.router)
    app.include_router(payments.router)

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok"}

    return app
