import logging
import time

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from .config import settings
from .database import Base, engine
from .errors import SchoolDeskError
from .routes import auth, buttons, emails, locations, users

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

if settings.sentry_dsn:
    sentry_sdk.init(dsn=settings.sentry_dsn, integrations=[FastApiIntegration()])

REQUEST_COUNT = Counter("request_count", "Total requests", ["method", "endpoint"])
REQUEST_LATENCY = Histogram(
    "request_latency_seconds", "Request latency", ["endpoint"]
)

Base.metadata.create_all(bind=engine)

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = auth.limiter
app.add_exception_handler(RateLimitExceeded, lambda r, e: Response("Too Many Requests", status_code=429))


@app.exception_handler(SchoolDeskError)
async def domain_exception_handler(request: Request, exc: SchoolDeskError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", exc.__class__.__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    endpoint = request.url.path
    REQUEST_COUNT.labels(request.method, endpoint).inc()
    REQUEST_LATENCY.labels(endpoint).observe(time.time() - start)
    return response

@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health():
    return {"status": "healthy"}

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(locations.router)
app.include_router(buttons.router)
app.include_router(emails.router)


PUBLIC_PATHS = {
    "/api/auth/login",
    "/api/auth/request-password-reset",
    "/api/auth/reset-password",
    "/api/locations/accept-invitation",
}


def audit_routes():
    from fastapi.routing import APIRoute
    from .auth import get_current_user

    for route in app.routes:
        if isinstance(route, APIRoute) and route.path.startswith("/api") and route.path not in PUBLIC_PATHS:
            calls = [dep.call for dep in route.dependant.dependencies]
            if get_current_user not in calls:
                raise RuntimeError(f"Route {route.path} missing authentication")


audit_routes()
