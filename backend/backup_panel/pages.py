"""Server-rendered pages.

The login form and the archive list, rendered from Jinja2 templates in
``templates/`` (autoescaped). Both pages load their scripts from /static;
the Content-Security-Policy forbids inline script.
"""

from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from backup_panel.api.deps import Backups, CurrentUsername
from backup_panel.core.config import settings
from backup_panel.core.errors import BackupCommandError

router = APIRouter()

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


@router.get("/login", response_class=HTMLResponse)
async def login_page(request: Request) -> HTMLResponse:
    """Login form. The route gate sends signed-in visitors to / instead."""
    return templates.TemplateResponse(
        request, "login.html", {"title": settings.app_title}
    )


@router.get("/", response_class=HTMLResponse)
async def home_page(
    request: Request, backups: Backups, username: CurrentUsername
) -> HTMLResponse:
    """Archive list with create/restore/download/upload controls."""
    try:
        files = await backups.list_backups()
    except BackupCommandError:
        files = []

    return templates.TemplateResponse(
        request,
        "home.html",
        {"title": settings.app_title, "username": username, "files": files},
    )
