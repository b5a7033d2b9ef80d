"""FastAPI application backing the layersizes web UI."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Dict

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from layersizes import __version__
from layersizes.analysis.layers import analyze_oci_layout
from layersizes.charts.compare import compare
from layersizes.charts.flatten import flatten
from layersizes.charts.plot import comparison_trace, sunburst_trace
from layersizes.config import AppConfig
from layersizes.history.storage import NonExistentError, SQLiteHistoryStore
from layersizes.models import DirectoryNode, ImageHistory
from layersizes.web.frontend import router as frontend_router

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="layersizes Web", version=__version__)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(frontend_router)


class HistoryPayload(BaseModel):
    ID: int | None = None
    Name: str
    History: Dict[str, Any] = {}


class FlattenPayload(BaseModel):
    tree: Dict[str, Any]
    max_depth: int = AppConfig().max_depth


class ComparePayload(BaseModel):
    left: Dict[str, Any] | None = None
    right: Dict[str, Any] | None = None


class AnalyzePayload(BaseModel):
    path: str


def _resolve_db_path(db: Path | None) -> Path:
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    return config.resolve_db_path(Path.cwd())


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _open_store(db: Path | None) -> SQLiteHistoryStore:
    resolved_db = _resolve_db_path(db)
    _ensure_db_parent(resolved_db)
    return SQLiteHistoryStore(resolved_db)


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.get("/history")
async def read_history(
    name: str | None = None, id: str | None = None, db: Path | None = None
) -> Any:
    """List all images, or fetch the history of one image by name or id."""
    if name is not None and id is not None:
        raise HTTPException(status_code=400, detail="Either the parameter id or name must be present")

    if name is None and id is None:
        resolved_db = _resolve_db_path(db)
        if not resolved_db.exists():
            return []
        store = SQLiteHistoryStore(resolved_db)
        try:
            return store.list_images()
        finally:
            store.close()

    image_id: int | None = None
    if id is not None:
        try:
            image_id = int(id)
        except ValueError:
            LOGGER.error("Received an invalid id: %s", id)
            raise HTTPException(status_code=400, detail="could not parse id as an integer")

    store = _open_store(db)
    try:
        if image_id is not None:
            try:
                return store.read_by_id(image_id).to_dict()
            except NonExistentError:
                raise HTTPException(
                    status_code=404,
                    detail=f"No image history with the id {image_id} is present in the database",
                )

        histories = store.read(name)  # type: ignore[arg-type]
    finally:
        store.close()

    if not histories:
        raise HTTPException(status_code=404, detail=f"No image history found with the name {name}")
    return [history.to_dict() for history in histories]


@app.put("/history")
async def create_history(payload: HistoryPayload, db: Path | None = None) -> Dict[str, Any]:
    history = ImageHistory.from_dict(payload.model_dump())
    store = _open_store(db)
    try:
        created = store.create(history)
    finally:
        store.close()
    return created.to_dict()


@app.post("/history")
async def update_history(payload: HistoryPayload, db: Path | None = None) -> Dict[str, Any]:
    if payload.ID is None:
        raise HTTPException(status_code=400, detail="Updating an image history requires its ID")

    history = ImageHistory.from_dict(payload.model_dump())
    store = _open_store(db)
    try:
        updated = store.update(history)
    except NonExistentError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    finally:
        store.close()
    return updated.to_dict()


@app.delete("/history")
async def delete_history(name: str, db: Path | None = None) -> Dict[str, str]:
    resolved_db = _resolve_db_path(db)
    if not resolved_db.exists():
        raise HTTPException(status_code=404, detail="Database not found")

    store = SQLiteHistoryStore(resolved_db)
    try:
        store.delete_by_name(name)
    except (ValueError, NonExistentError) as exc:
        LOGGER.error("Could not delete the image history %s: %s", name, exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    finally:
        store.close()
    return {"status": "ok"}


@app.post("/flatten")
async def flatten_tree(payload: FlattenPayload) -> Dict[str, Any]:
    chart = flatten(DirectoryNode.from_dict(payload.tree), payload.max_depth)
    return sunburst_trace(chart)


@app.post("/compare")
async def compare_trees(payload: ComparePayload) -> Dict[str, Any]:
    left = DirectoryNode.from_dict(payload.left) if payload.left is not None else None
    right = DirectoryNode.from_dict(payload.right) if payload.right is not None else None
    left_view, right_view = compare(left, right)
    return {
        "left": comparison_trace(left_view) if left_view is not None else None,
        "right": comparison_trace(right_view) if right_view is not None else None,
    }


def _run_analysis(layout_dir: Path) -> Dict[str, Any]:
    layers = analyze_oci_layout(layout_dir)
    return {digest: tree.to_dict() for digest, tree in layers.items()}


@app.post("/analyze")
async def analyze_layout(payload: AnalyzePayload) -> Dict[str, Any]:
    clean_path = payload.path.strip().replace("\r", "").replace("\n", "")
    if not clean_path:
        raise HTTPException(status_code=400, detail="No path provided")
    if "\0" in clean_path:
        raise HTTPException(status_code=400, detail="Invalid path: contains null byte")

    layout_dir = Path(os.path.realpath(os.path.expanduser(clean_path)))
    if not layout_dir.is_dir():
        raise HTTPException(status_code=404, detail="Image layout not found: %s" % clean_path)

    try:
        layers = await asyncio.to_thread(_run_analysis, layout_dir)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:  # pragma: no cover
        LOGGER.exception("Analysis failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return {"status": "ok", "layers": layers}

