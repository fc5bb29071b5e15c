# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException

from memberauth.auth.session import SessionManager, SessionUser
from memberauth.config import Settings, get_settings
from memberauth.errors import AppError, PersistenceError
from memberauth.infra import mongo
from memberauth.logger import configure_logging, get_logger
from memberauth.permissions import current_user_optional, require_user, session_manager
from memberauth.services import auth_service

BASE_DIR = Path(__file__).resolve().parent

templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))
router = APIRouter()
logger = get_logger(__name__)


def _render(request: Request, template_name: str, ctx: Optional[dict] = None, status_code: int = 200):
    """TemplateResponse wrapper injecting the current session user."""
    base_ctx = {"user": getattr(request.state, "user", None)}
    merged = {**base_ctx, **(ctx or {})}
    return templates.TemplateResponse(request, template_name, merged, status_code=status_code)


def _form_fields(form) -> dict:
    # A repeated field stays a list so validation rejects it instead of picking one.
    fields = {}
    for key in form.keys():
        values = form.getlist(key)
        fields[key] = values[0] if len(values) == 1 else values
    return fields


def _form_values(fields: dict) -> dict:
    # Echoed back into the form on error; the password never is.
    return {k: v for k, v in fields.items() if k in ("name", "email") and isinstance(v, str)}


async def _authenticate(request: Request, user: SessionUser) -> RedirectResponse:
    resp = RedirectResponse(url="/members", status_code=303)
    await session_manager(request).start(request, resp, user)
    return resp


# ------------------ Routes ------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request):
    return _render(request, "home.html")


@router.get("/signup", response_class=HTMLResponse)
def signup_get(request: Request):
    return _render(request, "signup.html", {"error": None, "form": {}})


@router.post("/signupSubmit")
async def signup_post(request: Request):
    fields = _form_fields(await request.form())
    try:
        users = request.app.state.users
        user = await auth_service.sign_up(users, fields)
        try:
            return await _authenticate(request, user)
        except PersistenceError:
            await auth_service.undo_sign_up(users, user)
            raise
    except PersistenceError as e:
        logger.exception("database_error", route="signupSubmit")
        return _render(request, "signup.html", {"error": e.message, "form": _form_values(fields)})
    except AppError as e:
        return _render(request, "signup.html", {"error": e.message, "form": _form_values(fields)})


@router.get("/login", response_class=HTMLResponse)
def login_get(request: Request):
    return _render(request, "login.html", {"error": None, "form": {}})


@router.post("/loginSubmit")
async def login_post(request: Request):
    fields = _form_fields(await request.form())
    try:
        user = await auth_service.log_in(request.app.state.users, fields)
        return await _authenticate(request, user)
    except PersistenceError as e:
        logger.exception("database_error", route="loginSubmit")
        return _render(request, "login.html", {"error": e.message, "form": _form_values(fields)})
    except AppError as e:
        return _render(request, "login.html", {"error": e.message, "form": _form_values(fields)})


@router.get("/members", response_class=HTMLResponse)
def members(request: Request, user: SessionUser = Depends(require_user)):
    return _render(request, "members.html", {"user": user, "image": auth_service.pick_member_image()})


@router.get("/logout")
async def logout(request: Request):
    resp = RedirectResponse(url="/", status_code=303)
    try:
        await session_manager(request).destroy(request, resp)
    except PersistenceError:
        logger.exception("database_error", route="logout")
        return _render(request, "500.html", status_code=500)
    return resp


# ------------------ App factory ------------------


def create_app(database: Any = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the application.

    ``database`` is an already connected MongoDB database handle; when omitted
    a client is created from ``MONGODB_HOST`` on startup and closed on shutdown.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_debug)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = None
        db = database
        if db is None:
            client = mongo.connect(settings)
            db = client[settings.mongodb_database]

        users = mongo.user_store(db)
        store = mongo.session_store(db)
        app.state.users = users
        app.state.sessions = SessionManager(
            store,
            secret=settings.session_secret,
            cookie_name=settings.session_cookie_name,
            cookie_secure=settings.session_cookie_secure,
        )
        try:
            await mongo.prepare(users, store)
            logger.info("connected_to_mongodb", database=settings.mongodb_database)
        except PersistenceError:
            logger.exception("mongodb_unavailable", database=settings.mongodb_database)

        try:
            yield
        finally:
            if client is not None:
                await client.close()

    app = FastAPI(lifespan=lifespan)
    app.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")
    app.include_router(router)

    @app.middleware("http")
    async def _auth_middleware(request: Request, call_next):
        if request.url.path.startswith("/static"):
            request.state.user = None
        else:
            request.state.user = await current_user_optional(request)
        return await call_next(request)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _render(request, "404.html", status_code=404)
        return await http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception):
        logger.error("unhandled_error", path=request.url.path, exc_info=exc)
        return _render(request, "500.html", status_code=500)

    return app


app = create_app()
