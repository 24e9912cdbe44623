import sentry_sdk
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from payment_core import database
from payment_core.admin import router as admin_router
from payment_core.config import get_settings
from payment_core.database import Base
from payment_core.exceptions import PaymentServiceError
from payment_core.logging_config import configure_logging
from payment_core.monitoring import Alerter, configure_sentry
from payment_core.routes import router

settings = get_settings()
configure_logging(settings.log_level, settings.log_format)
configure_sentry(settings)
logger = structlog.get_logger(component="api")

app = FastAPI(title="Deposit Checkout Service")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

app.include_router(router)
app.include_router(admin_router)

if database.engine is not None:
    Base.metadata.create_all(bind=database.engine)


@app.exception_handler(PaymentServiceError)
async def payment_service_error_handler(request: Request, exc: PaymentServiceError):
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("request_failed", path=request.url.path, status_code=exc.status_code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        msg = str(first.get("msg", message)).removeprefix("Value error, ")
        field = next((str(part) for part in reversed(first.get("loc", ())) if isinstance(part, str)), None)
        message = msg if first.get("type") == "value_error" or not field else f"{field}: {msg}"
    logger.warning("request_invalid", path=request.url.path, error=message)
    return JSONResponse(status_code=400, content={"detail": message})


@app.exception_handler(Exception)
def unhandled_error_handler(request: Request, exc: Exception):
    # Sync so Starlette runs it in the threadpool; the alert POST blocks.
    logger.exception("unhandled_error", path=request.url.path)
    sentry_sdk.capture_exception(exc)
    Alerter(get_settings().monitoring_webhook_url).send(
        "error", "unhandled_error", path=request.url.path, error=str(exc)
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("payment_core.main:app", host="0.0.0.0", port=8000)
