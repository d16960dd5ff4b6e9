from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from payhub.api.routes import payments
from payhub.core.config import Settings, get_settings
from payhub.core.logging import configure_logging, get_logger
from payhub.integrations.payment_gateways.base import (
    GatewayNotConfiguredError,
    NotFoundError,
    NotSimulatedError,
    PaymentError,
    UnsupportedMethodError,
    UnsupportedProviderError,
    UpstreamError,
)
from payhub.services.payment_service import PaymentService, build_payment_service

logger = get_logger(__name__)

ERROR_STATUS = {
    UnsupportedMethodError: status.HTTP_400_BAD_REQUEST,
    UnsupportedProviderError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    NotSimulatedError: status.HTTP_409_CONFLICT,
    UpstreamError: status.HTTP_502_BAD_GATEWAY,
    GatewayNotConfiguredError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


async def payment_error_handler(request: Request, exc: PaymentError) -> JSONResponse:
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    logger.warning(
        "payment.error",
        path=request.url.path,
        error_code=exc.error_code,
        provider=exc.provider,
        error=exc.error_message,
    )
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": exc.error_message,
            "error_code": exc.error_code,
            "provider": exc.provider,
        },
    )


def create_application(
    settings: Optional[Settings] = None,
    payment_service: Optional[PaymentService] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        service = payment_service or build_payment_service(settings)
        application.state.payment_service = service
        logger.info(
            "application.startup",
            environment=settings.environment,
            simulated=service.is_simulated_mode,
        )
        yield
        await service.aclose()
        logger.info("application.shutdown")

    application = FastAPI(title=settings.app_name, lifespan=lifespan)
    application.include_router(payments.router)
    application.add_exception_handler(PaymentError, payment_error_handler)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return application


def create_default_application() -> FastAPI:
    """Application wired from the process settings, served as `uvicorn payhub.main:app`."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.environment)
    return create_application(settings)


app = create_default_application()
