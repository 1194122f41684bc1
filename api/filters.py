"""
Named filter storage for gfxs-studio.

Filters are whole composite documents stored as ``<name>.gfxs`` files in the
filters directory. Routes keep the paths of the original web editor:
``GET /filters``, ``GET /filter?name=`` and ``POST /saveFilter``.
"""

from __future__ import annotations

from pathlib import Path

import aiofiles
from fastapi import APIRouter, Depends, Form, HTTPException, Query
from fastapi.responses import PlainTextResponse

from .app_config import get_settings
from .shared.logger import get_logger

logger = get_logger(__name__)

FILTER_SUFFIX = ".gfxs"

router = APIRouter(tags=["filters"])


class FilterNotFoundError(KeyError):
    """Raised when a named filter does not exist."""


class FilterStore:
    """Key/document store backed by one file per filter."""

    def __init__(self, root: Path):
        self.root = Path(root)

    @staticmethod
    def validate_name(name: str) -> str:
        """Reject names that would escape the filters directory."""
        name = name.strip()
        if not name or name.startswith(".") or "/" in name or "\\" in name:
            raise ValueError(f"Invalid filter name: {name!r}")
        return name

    def _path(self, name: str) -> Path:
        return self.root / f"{self.validate_name(name)}{FILTER_SUFFIX}"

    def list_names(self) -> list[str]:
        if not self.root.exists():
            return []
        return sorted(
            p.name[: -len(FILTER_SUFFIX)] if p.name.endswith(FILTER_SUFFIX) else p.name
            for p in self.root.iterdir()
            if p.is_file()
        )

    async def read(self, name: str) -> str:
        path = self._path(name)
        if not path.is_file():
            raise FilterNotFoundError(name)
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            return await f.read()

    async def write(self, name: str, document: str) -> None:
        """Store ``document`` under ``name``, replacing any previous version."""
        path = self._path(name)
        self.root.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(document)
        logger.info("Saved filter %s (%d bytes)", name, len(document))


def get_filter_store() -> FilterStore:
    """FastAPI dependency returning the configured filter store."""
    return FilterStore(get_settings().filters_dir)


@router.get("/filters")
async def list_filters(store: FilterStore = Depends(get_filter_store)):
    """List stored filter names."""
    return store.list_names()


@router.get("/filter", response_class=PlainTextResponse)
async def read_filter(
    name: str = Query("", description="Filter name"),
    store: FilterStore = Depends(get_filter_store),
):
    """Return the raw document text of a stored filter."""
    if not name:
        raise HTTPException(status_code=400, detail="Filter name required")
    try:
        return await store.read(name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except FilterNotFoundError:
        raise HTTPException(status_code=404, detail="Filter not found")


@router.post("/saveFilter", response_class=PlainTextResponse)
async def save_filter(
    name: str = Form(""),
    filter: str = Form(""),
    store: FilterStore = Depends(get_filter_store),
):
    """Store a full document under a name (upsert)."""
    if not name or not filter:
        raise HTTPException(status_code=400, detail="Name and filter content are required")
    try:
        await store.write(name, filter)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to save filter: {e}")
    return "OK"
