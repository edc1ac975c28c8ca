"""
Dashboard entry points.
"""
import logging
from functools import lru_cache
from pathlib import Path

from fastapi import APIRouter, HTTPException
from fastapi.responses import HTMLResponse, RedirectResponse

from deployhub.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()


@lru_cache(maxsize=1)
def load_index_html() -> bytes:
    """Read the dashboard's index.html once per process."""
    return (Path(settings.UI_DIST_DIR) / "index.html").read_bytes()


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
def index():
    try:
        content = load_index_html()
    except OSError as e:
        logger.error(f"failed to read index.html: {e}")
        raise HTTPException(status_code=500, detail="Dashboard is not built") from e
    return HTMLResponse(content=content)


@router.get("/logout", include_in_schema=False)
def logout():
    response = RedirectResponse(url="/login", status_code=302)
    response.delete_cookie(settings.USERNAME_COOKIE_NAME)
    return response
