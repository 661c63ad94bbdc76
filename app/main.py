from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from app.core import config
from app.core.database.engine import init_db
from app.core.errors import AppError
from app.core.middleware import RequestTimeoutMiddleware
from app.core.rate_limit import limiter
from app.features.permissions.routes import router as permission_router
from app.features.promotions.routes import router as promotion_router
from app.features.settings.routes import router as settings_router
from app.features.workspaces.routes import router as workspace_router
from app.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="Workspace Backend",
    description="Workspace RBAC, feature toggles and promotion voting",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
app.state.limiter = limiter


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.app.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))
app.add_middleware(RequestTimeoutMiddleware, timeout=config.REQUEST_TIMEOUT_SECONDS)

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(AppError)
async def app_error_handler(_request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"].removeprefix("Value error, ")
    log.info("Request validation error %s", errors)
    detail = next(iter(errors.values()), "Invalid request")
    return JSONResponse(status_code=400, content=jsonable_encoder({"detail": detail, "errors": errors}))


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"detail": "You are going too fast"}, status_code=429)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    log.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.on_event("startup")
async def startup():
    """Initialize database on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Workspace Backend API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require Bearer token in Authorization header",
            "public_endpoints": ["/", "/health", "/workspaces/{id}/settings/general/{key}"]
        },
        "features": {
            "permissions": "Workspace-scoped RBAC with owner roles and an admin override",
            "settings": "Per-workspace feature toggles",
            "promotions": "Promotion recommendations with justified up/down votes"
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
WORKSPACE_PREFIX = "/workspaces/{workspace_id}"

app.include_router(workspace_router, prefix="/workspaces", tags=["workspaces"])

# Role and membership routes (RBAC)
app.include_router(permission_router, prefix=WORKSPACE_PREFIX, tags=["permissions"])

# Feature toggle routes
app.include_router(settings_router, prefix=WORKSPACE_PREFIX, tags=["settings"])

# Promotion routes
app.include_router(promotion_router, prefix=WORKSPACE_PREFIX, tags=["promotions"])
