"""FastAPI entrypoint for Assessment Hub."""

import logging
from pathlib import Path

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import HTTPException
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from sqlmodel import Session
from starlette.middleware.sessions import SessionMiddleware

from assessment_hub.config import get_settings
from assessment_hub.database import create_db_and_tables, engine
from assessment_hub.deps import require_login
from assessment_hub.errors import AppError
from assessment_hub.models import User
from assessment_hub.routers import assignments as assignments_router_module
from assessment_hub.routers import auth as auth_router_module
from assessment_hub.routers import companies as companies_router_module
from assessment_hub.routers import pages as pages_router_module
from assessment_hub.routers import questions as questions_router_module
from assessment_hub.routers import results as results_router_module
from assessment_hub.routers import sessions as sessions_router_module
from assessment_hub.routers import tests as tests_router_module
from assessment_hub.routers import users as users_router_module
from assessment_hub.seed import seed_demo_data

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Assessment Hub")


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Render service errors as ``{"detail", "code", ...}``."""
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", exc.code, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Turn login redirects and page-level 403s into redirects; JSON otherwise."""
    is_api = request.url.path.startswith("/api/")
    if exc.status_code == 303 and exc.headers and exc.headers.get("Location"):
        return RedirectResponse(url=exc.headers["Location"], status_code=status.HTTP_303_SEE_OTHER)
    if exc.status_code == 403 and not is_api:
        return RedirectResponse(
            url=f"{settings.dashboard_path}?notice=not_available",
            status_code=status.HTTP_303_SEE_OTHER,
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


# Session middleware for cookie-based authentication
app.add_middleware(SessionMiddleware, secret_key=settings.secret_key)

app.mount(
    "/static",
    StaticFiles(directory=str(Path(__file__).resolve().parent / "static")),
    name="static",
)

# Routers
app.include_router(auth_router_module.router, prefix="/api/auth", tags=["auth"])
app.include_router(users_router_module.router, prefix="/api/users", tags=["users"])
app.include_router(companies_router_module.router, prefix="/api/companies", tags=["companies"])
app.include_router(tests_router_module.router, prefix="/api/tests", tags=["tests"])
app.include_router(questions_router_module.router, prefix="/api/questions", tags=["questions"])
app.include_router(assignments_router_module.groups_router, prefix="/api/groups", tags=["groups"])
app.include_router(
    assignments_router_module.assignments_router, prefix="/api/assignments", tags=["assignments"]
)
app.include_router(
    assignments_router_module.group_assignments_router,
    prefix="/api/group-assignments",
    tags=["assignments"],
)
app.include_router(sessions_router_module.router, prefix="/api/sessions", tags=["sessions"])
app.include_router(
    sessions_router_module.proctoring_router, prefix="/api/proctoring", tags=["proctoring"]
)
app.include_router(results_router_module.router, prefix="/api/results", tags=["results"])
app.include_router(pages_router_module.router, tags=["pages"])


@app.get("/")
def home(current_user: User = Depends(require_login)):
    return RedirectResponse(url=settings.dashboard_path, status_code=status.HTTP_303_SEE_OTHER)


@app.on_event("startup")
def on_startup():
    """Initialize database schema and seed demo data."""
    create_db_and_tables()
    if settings.seed_demo_data:
        with Session(engine) as session:
            seed_demo_data(session)
