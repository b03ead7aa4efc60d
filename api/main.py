from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.asgi import OpenTelemetryMiddleware
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

# Telemetry must be initialized before any other module asks for a logger
from common.core.otel_axiom_exporter import _initialize_telemetry, get_logger

_initialize_telemetry()

from api.v1.routes.router import api_router  # noqa: E402
from common.core.config import settings  # noqa: E402
from common.core.constants import Environment  # noqa: E402
from common.core.exceptions import PaymentProviderError  # noqa: E402
from common.db.session import init_db  # noqa: E402
from common.providers.rate_limiter.limiter import limiter  # noqa: E402

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.app_name} ({settings.environment.value})")
    await init_db()
    yield
    logger.info(f"Shutting down {settings.app_name}")


async def payment_provider_error_handler(request: Request, exc: PaymentProviderError):
    """A gateway outage is the provider's failure, not the caller's: 502."""
    logger.error(
        f"Payment provider error on {request.url.path}: {exc}",
        extra={"provider": exc.provider, "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": {"code": "payment_provider_error", "message": str(exc)}},
    )


# OpenAPI docs only in local development
_expose_docs = settings.environment == Environment.LOCAL

app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    lifespan=lifespan,
    docs_url="/docs" if _expose_docs else None,
    redoc_url="/redoc" if _expose_docs else None,
    openapi_url="/openapi.json" if _expose_docs else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(PaymentProviderError, payment_provider_error_handler)
app.add_middleware(SlowAPIMiddleware)

FastAPIInstrumentor.instrument_app(app)
app.add_middleware(OpenTelemetryMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


# Probe endpoint outside /api/v1; k8s hits pod IPs directly
@app.get("/healthz", include_in_schema=False)
async def healthz():
    return {"status": "ok"}
