from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from timefund.api.routes import health
from timefund.core.config import settings
from timefund.core.logging import clear_actor, configure_logging, get_logger
from timefund.core.monitoring import configure_error_monitoring
from timefund.core.observability import configure_observability
from timefund.domains.auth.router import router as auth_router
from timefund.domains.departments.router import router as departments_router
from timefund.domains.exports.router import router as exports_router
from timefund.domains.funding_sources.router import router as funding_sources_router
from timefund.domains.projects.router import router as projects_router
from timefund.domains.time_entries.router import router as time_router
from timefund.domains.users.router import router as users_router

configure_logging(settings.log_level)
configure_observability()
configure_error_monitoring()
logger = get_logger(__name__)

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.cors_origins] or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def reset_log_context(request: Request, call_next):
    clear_actor()
    try:
        return await call_next(request)
    finally:
        clear_actor()


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path, method=request.method)
    return JSONResponse(status_code=500, content={"detail": "Server error"})


app.include_router(health.router)
for domain_router in (
    auth_router,
    users_router,
    projects_router,
    departments_router,
    funding_sources_router,
    time_router,
    exports_router,
):
    app.include_router(domain_router, prefix=settings.api_prefix)


@app.on_event("startup")
def startup_event() -> None:
    logger.info("startup_complete", env=settings.env, api_prefix=settings.api_prefix)


@app.get("/")
def root() -> dict[str, str]:
    return {"message": "Timefund API running", "environment": settings.env}
