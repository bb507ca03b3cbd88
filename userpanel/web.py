"""Browser-based administration interface for user records."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import httpx
from fastapi import FastAPI, File, Form, Request, UploadFile, status
from fastapi.responses import (
    HTMLResponse,
    JSONResponse,
    PlainTextResponse,
    RedirectResponse,
    Response,
)
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel
from starlette.middleware.sessions import SessionMiddleware

from .config import Settings, load_settings
from .database import Database, DuplicateEmailError, RepositoryError
from .exporter import export_users_csv
from .importer import ImportStatus, import_users_from_text
from .proxy import ProxyTester
from .queries import build_user_list_query, total_pages
from .security import AdminCredentials

BASE_DIR = Path(__file__).resolve().parent
TEMPLATE_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"

SESSION_MAX_AGE = 60 * 60 * 8

UPLOAD_MESSAGES: Dict[str, tuple[str, str]] = {
    "success": ("success", "Import finished."),
    "partial-success": ("error", "No users were imported: every row was rejected."),
    "no-new-users": ("info", "No new users were found in the file."),
    "no-file": ("error", "Choose a CSV file to upload."),
    "invalid-type": ("error", "Only CSV or plain-text files can be imported."),
    "file-too-large": ("error", "The file is larger than the 5 MB upload limit."),
    "empty-file": ("error", "The uploaded file is empty."),
    "insufficient-data": ("error", "The file has a header but no data rows."),
    "missing-columns": ("error", "The header must contain 'name' and 'email' columns."),
    "server-error": ("error", "The import failed unexpectedly. Please try again."),
}

logger = logging.getLogger("userpanel.web")


class UserUpdateRequest(BaseModel):
    name: str
    email: str


def _format_datetime(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%d %b %Y %H:%M %Z")


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def create_app(
    *,
    database: Optional[Database] = None,
    settings: Optional[Settings] = None,
    proxy_tester: Optional[ProxyTester] = None,
    initialize_database: bool = False,
) -> FastAPI:
    """Create the admin panel web application."""

    if settings is None:
        settings = load_settings()
    settings.require_web_credentials()

    if database is None:
        database = Database(settings.database_path)
        database.initialize()
    elif initialize_database:
        database.initialize()

    credentials = AdminCredentials(settings.admin_username, settings.admin_password or "")
    proxy = proxy_tester or ProxyTester(timeout=settings.proxy_timeout)

    app = FastAPI(
        title="User Administration Panel",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.database = database
    app.state.settings = settings
    app.state.proxy = proxy

    if not settings.secure_cookies:
        logger.warning(
            "Session cookies are not marked as secure. Only disable secure cookies for"
            " local development."
        )

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie="userpanel_session",
        https_only=settings.secure_cookies,
        same_site="lax",
        max_age=SESSION_MAX_AGE,
    )

    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
    templates.env.globals["format_datetime"] = _format_datetime
    templates.env.globals["now"] = lambda: datetime.now(timezone.utc)
    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

    def _flash(request: Request, message: str, *, category: str = "info") -> None:
        messages = request.session.get("flash_messages")
        if not isinstance(messages, list):
            messages = []
        messages.append({"message": message, "category": category})
        request.session["flash_messages"] = messages

    def _consume_flash(request: Request) -> List[Dict[str, str]]:
        messages = request.session.pop("flash_messages", [])
        if isinstance(messages, list):
            return messages
        return []

    def _is_authenticated(request: Request) -> bool:
        return request.session.get("authenticated") is True

    def _redirect(request: Request, name: str, **path_params: object) -> RedirectResponse:
        return RedirectResponse(
            request.url_for(name, **path_params),
            status_code=status.HTTP_303_SEE_OTHER,
        )

    def _redirect_to_login(request: Request) -> RedirectResponse:
        return _redirect(request, "show_login")

    def _json_auth_error() -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"status": "error", "message": "Authentication required."},
        )

    def _json_error(status_code: int, message: str) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={"status": "error", "message": message},
        )

    def _render(request: Request, template: str, status_code: int = 200, **context: object):
        context.setdefault("admin_username", request.session.get("username"))
        return templates.TemplateResponse(request, template, context, status_code=status_code)

    def _upload_redirect(request: Request, upload_status: str, **counts: int) -> RedirectResponse:
        url = request.url_for("list_users").include_query_params(upload=upload_status, **counts)
        return RedirectResponse(str(url), status_code=status.HTTP_303_SEE_OTHER)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    @app.get("/login", response_class=HTMLResponse, name="show_login")
    async def login_form(request: Request):
        if _is_authenticated(request):
            return _redirect(request, "dashboard")
        error = request.session.pop("login_error", None)
        return _render(request, "login.html", error=error)

    @app.post("/login", name="process_login")
    async def process_login(request: Request, username: str = Form(""), password: str = Form("")):
        if not credentials.verify(username, password):
            logger.warning("Failed web login attempt for %s", username)
            request.session["login_error"] = "Invalid username or password."
            return _redirect_to_login(request)

        request.session.clear()
        request.session["authenticated"] = True
        request.session["username"] = credentials.username
        logger.info("Administrator %s signed in", credentials.username)
        return _redirect(request, "dashboard")

    @app.get("/logout", name="logout")
    async def logout(request: Request):
        request.session.clear()
        return _redirect_to_login(request)

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------
    @app.get("/", response_class=HTMLResponse, name="dashboard")
    async def dashboard(request: Request):
        if not _is_authenticated(request):
            return _redirect_to_login(request)
        messages = _consume_flash(request)
        try:
            total_users = database.count_users()
            recent_users = database.recent_users(5)
        except RepositoryError as exc:
            logger.error("Failed to load dashboard: %s", exc)
            messages.append({"message": "Users could not be loaded.", "category": "error"})
            return _render(
                request,
                "dashboard.html",
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                total_users=0,
                recent_users=[],
                messages=messages,
            )
        return _render(
            request,
            "dashboard.html",
            total_users=total_users,
            recent_users=recent_users,
            messages=messages,
        )

    @app.get("/users", response_class=HTMLResponse, name="list_users")
    async def list_users(request: Request):
        if not _is_authenticated(request):
            return _redirect_to_login(request)

        params = request.query_params
        query = build_user_list_query(params)
        messages = _consume_flash(request)
        status_code = status.HTTP_200_OK
        try:
            users, count = database.find_and_count(query)
        except RepositoryError as exc:
            logger.error("Failed to load users: %s", exc)
            messages.append({"message": "Users could not be loaded.", "category": "error"})
            users, count = [], 0
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        pages = total_pages(count, query.limit)
        logger.info("Loaded %s user(s) (page %s/%s)", len(users), query.page, pages)

        upload_status = params.get("upload")
        upload_banner = UPLOAD_MESSAGES.get(upload_status) if upload_status else None

        return _render(
            request,
            "users.html",
            status_code,
            users=users,
            query=query,
            raw_filter=params.get("filter", ""),
            current_page=query.page,
            total_pages=pages,
            total_users=count,
            upload=upload_status,
            upload_banner=upload_banner,
            imported=_optional_int(params.get("imported")),
            skipped=_optional_int(params.get("skipped")),
            errors=_optional_int(params.get("errors")),
            messages=messages,
        )

    @app.get("/users/{user_id}", response_class=HTMLResponse, name="user_detail")
    async def user_detail(request: Request, user_id: int):
        if not _is_authenticated(request):
            return _redirect_to_login(request)

        user = database.get_user(user_id)
        if user is None:
            logger.info("User %s not found", user_id)
            return _render(request, "user_detail.html", status.HTTP_404_NOT_FOUND, user=None)
        return _render(request, "user_detail.html", user=user, messages=_consume_flash(request))

    @app.get("/add", response_class=HTMLResponse, name="add_user_form")
    async def add_user_form(request: Request):
        if not _is_authenticated(request):
            return _redirect_to_login(request)
        return _render(request, "add.html", name="", email="", error=None)

    @app.post("/add", name="add_user")
    async def add_user(request: Request, name: str = Form(""), email: str = Form("")):
        if not _is_authenticated(request):
            return _redirect_to_login(request)

        try:
            user = database.create_user(name, email)
        except (ValueError, RepositoryError) as exc:
            logger.warning("Failed to create user %s: %s", email, exc)
            return _render(
                request,
                "add.html",
                status.HTTP_400_BAD_REQUEST,
                name=name,
                email=email,
                error=str(exc),
            )

        logger.info("User added: %s (%s)", user.name, user.email)
        _flash(request, f"Added {user.name}.", category="success")
        return _redirect(request, "list_users")

    @app.post("/delete/{user_id}", name="delete_user")
    async def delete_user(request: Request, user_id: int):
        if not _is_authenticated(request):
            return _redirect_to_login(request)

        if database.soft_delete_user(user_id):
            logger.info("User %s deleted", user_id)
            _flash(request, "User deleted.", category="success")
        else:
            logger.info("User %s not found for deletion", user_id)
            _flash(request, "User not found.", category="error")
        return _redirect(request, "list_users")

    @app.post("/users/bulk-delete", name="bulk_delete_users")
    async def bulk_delete_users(request: Request):
        if not _is_authenticated(request):
            return _redirect_to_login(request)

        form = await request.form()
        ids = [value for value in (_optional_int(str(raw)) for raw in form.getlist("ids")) if value]
        if not ids:
            _flash(request, "Select at least one user to delete.", category="error")
            return _redirect(request, "list_users")

        deleted = database.soft_delete_users(ids)
        _flash(request, f"Deleted {deleted} user(s).", category="success")
        url = request.url_for("list_users").include_query_params(deleted=deleted)
        return RedirectResponse(str(url), status_code=status.HTTP_303_SEE_OTHER)

    @app.get("/proxy", response_class=HTMLResponse, name="proxy_page")
    async def proxy_page(request: Request):
        if not _is_authenticated(request):
            return _redirect_to_login(request)
        return _render(request, "proxy.html")

    # ------------------------------------------------------------------
    # JSON endpoints
    # ------------------------------------------------------------------
    @app.get("/user/{user_id}", name="get_user_json")
    async def get_user_json(request: Request, user_id: int):
        if not _is_authenticated(request):
            return _json_auth_error()

        user = database.get_user(user_id)
        if user is None:
            return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "Not found"})
        return user.to_dict()

    @app.put("/update/{user_id}", name="update_user")
    async def update_user(request: Request, user_id: int, payload: UserUpdateRequest):
        if not _is_authenticated(request):
            return _json_auth_error()

        try:
            user = database.update_user(user_id, name=payload.name, email=payload.email)
        except DuplicateEmailError as exc:
            return _json_error(status.HTTP_409_CONFLICT, str(exc))
        except ValueError as exc:
            return _json_error(status.HTTP_400_BAD_REQUEST, str(exc))
        except RepositoryError as exc:
            logger.error("Failed to update user %s: %s", user_id, exc)
            return _json_error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

        if user is None:
            logger.info("User %s not found for update", user_id)
            return _json_error(status.HTTP_404_NOT_FOUND, "User not found.")

        logger.info("User %s updated to %s (%s)", user.id, user.name, user.email)
        return {"message": "User updated successfully", "user": user.to_dict()}

    @app.get("/proxy/{url:path}", name="proxy_fetch")
    async def proxy_fetch(request: Request, url: str):
        if not _is_authenticated(request):
            return _json_auth_error()

        try:
            result = await proxy.fetch(url)
        except ValueError as exc:
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})
        except httpx.HTTPError as exc:
            logger.error("Proxy test for %s failed: %s", url, exc)
            return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"error": str(exc)})

        if result.is_json:
            return JSONResponse(content=result.json_body, status_code=result.status_code)
        return PlainTextResponse(result.text or "", status_code=result.status_code)

    # ------------------------------------------------------------------
    # CSV transfer
    # ------------------------------------------------------------------
    @app.get("/export", name="export_users")
    async def export_users(request: Request):
        if not _is_authenticated(request):
            return _redirect_to_login(request)

        users = database.list_users()
        payload = export_users_csv(users)
        logger.info("Exported %s user(s) to CSV", len(users))
        return Response(
            content=payload,
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="users.csv"'},
        )

    @app.post("/upload", name="upload_users")
    async def upload_users(request: Request, file: Optional[UploadFile] = File(None)):
        if not _is_authenticated(request):
            return _redirect_to_login(request)

        if file is None or not file.filename:
            logger.info("Upload rejected: no file")
            return _upload_redirect(request, "no-file")

        try:
            content_type = file.content_type or ""
            filename = file.filename
            if (
                "text" not in content_type
                and "csv" not in content_type
                and not filename.lower().endswith(".csv")
            ):
                logger.info("Upload rejected: invalid file type %s", content_type)
                return _upload_redirect(request, "invalid-type")

            data = await file.read(settings.max_upload_bytes + 1)
            if len(data) > settings.max_upload_bytes:
                logger.info("Upload rejected: %s exceeds %s bytes", filename, settings.max_upload_bytes)
                return _upload_redirect(request, "file-too-large")

            logger.info("File uploaded: %s (%s bytes, %s)", filename, len(data), content_type)
            text = data.decode("utf-8-sig", errors="replace")
            result = import_users_from_text(text, database)
        except Exception:
            logger.exception("Unexpected error while importing %s", file.filename)
            return _upload_redirect(request, "server-error")
        finally:
            await file.close()
            logger.debug("Cleaned up upload %s", file.filename)

        if isinstance(result, ImportStatus):
            return _upload_redirect(request, result.value)
        if result.status is ImportStatus.SUCCESS:
            return _upload_redirect(
                request,
                result.status.value,
                imported=result.imported_count,
                skipped=result.skipped_count,
                errors=result.error_count,
            )
        return _upload_redirect(request, result.status.value)

    return app


__all__ = ["create_app"]
