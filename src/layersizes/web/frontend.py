"""Static HTML frontend for the layersizes web UI."""

from __future__ import annotations

from functools import lru_cache
from importlib.resources import files

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

from layersizes import __version__

router = APIRouter()


@lru_cache(maxsize=1)
def _load_template() -> str:
    """The chart page with the package version filled in."""
    template = files("layersizes.web").joinpath("templates", "index.html")
    return template.read_text(encoding="utf-8").replace("{{ version }}", __version__)


@router.get("/", response_class=HTMLResponse)
async def index() -> HTMLResponse:
    return HTMLResponse(content=_load_template())
