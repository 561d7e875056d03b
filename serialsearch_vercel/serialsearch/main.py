"""FastAPI application for the chapter search service.

Public routes serve searches and the cache status. Administrative routes
rebuild or extend the chapter cache; they require the shared secret from
``ADMIN_PASSWORD`` in the ``X-Admin-Password`` header. Full crawls can
take a long time, so ``reset`` and ``update`` are handed to FastAPI's
``BackgroundTasks`` and answered with ``202``; their outcome shows up in
``/status``.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from functools import lru_cache
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, Response
from fastapi.responses import JSONResponse

from . import search as search_service
from .config import Settings
from .errors import (
    FetchError,
    InventoryBusyError,
    MissingIndexError,
    QueryTooLargeError,
    ReconciliationError,
)
from .inventory import Inventory

logger = logging.getLogger("serialsearch.app")

app = FastAPI(title="Serial Chapter Search")

_inventory: Optional[Inventory] = None


@lru_cache()
def get_settings() -> Settings:
    """Singleton Settings -- override via app.dependency_overrides in tests."""
    return Settings()


def get_inventory(settings: Settings = Depends(get_settings)) -> Inventory:
    """Process-wide Inventory, recreated if the settings object changes."""
    global _inventory
    if _inventory is None or _inventory.settings is not settings:
        _inventory = Inventory(settings)
    return _inventory


def require_admin(x_admin_password: Optional[str] = Header(None),
                  settings: Settings = Depends(get_settings)) -> None:
    expected = settings.admin_password
    if not expected or not x_admin_password:
        raise HTTPException(status_code=403, detail="Forbidden")
    if not secrets.compare_digest(x_admin_password.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=403, detail="Forbidden")


async def background_reset(inventory: Inventory) -> None:
    """Background task to rebuild the whole chapter cache."""
    try:
        progress = await inventory.reset()
        logger.info("Background reset wrote %d chapters", progress.written)
    except InventoryBusyError as e:
        logger.warning("Reset skipped: %s", e)
    except FetchError as e:
        logger.error("Reset failed: %s", e)
    except Exception:
        logger.exception("Reset failed unexpectedly")


async def background_update(inventory: Inventory) -> None:
    """Background task to append newly published chapters."""
    try:
        progress = await inventory.update()
        logger.info("Background update wrote %d chapters", progress.written)
    except InventoryBusyError as e:
        logger.warning("Update skipped: %s", e)
    except (FetchError, ReconciliationError) as e:
        logger.error("Update failed: %s", e)
    except Exception:
        logger.exception("Update failed unexpectedly")


@app.on_event("startup")
async def on_startup() -> None:
    """Configure logging and, if asked to, crawl an empty cache."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    inventory = get_inventory(settings)
    logger.info("Serving %d cached chapters from %s", inventory.num_chapters, settings.data_dir)
    if settings.crawl_on_startup and inventory.num_chapters == 0:
        app.state.startup_crawl = asyncio.create_task(background_reset(inventory))


@app.get("/search")
async def search_endpoint(query: str = Query(""),
                          case_sensitive: bool = Query(False, alias="caseSensitive"),
                          inventory: Inventory = Depends(get_inventory)) -> Response:
    """Search all chapters. ``query`` holds comma-separated terms.

    Only chapters with a positive score are returned, in chapter order.
    """
    try:
        results = await search_service.search(inventory, query, case_sensitive=case_sensitive)
    except QueryTooLargeError as e:
        raise HTTPException(status_code=413, detail=str(e))
    except InventoryBusyError:
        raise HTTPException(status_code=503, detail="Chapters are being updated, try again later")
    matches = search_service.matching_results(results)
    return JSONResponse([result.to_dict() for result in matches])


@app.get("/status")
async def status_endpoint(inventory: Inventory = Depends(get_inventory)) -> Response:
    return JSONResponse({
        "state": inventory.state.value,
        "num_chapters": inventory.num_chapters,
        "last_error": inventory.last_error,
    })


def _accept(operation: str) -> Response:
    return JSONResponse({"status": "accepted", "operation": operation}, status_code=202)


@app.post("/admin/reset", dependencies=[Depends(require_admin)])
async def reset_endpoint(background_tasks: BackgroundTasks,
                         inventory: Inventory = Depends(get_inventory)) -> Response:
    """Re-crawl every chapter in the background."""
    if inventory.busy:
        raise HTTPException(status_code=503, detail=f"Inventory is {inventory.state.value}")
    background_tasks.add_task(background_reset, inventory)
    return _accept("reset")


@app.post("/admin/update", dependencies=[Depends(require_admin)])
async def update_endpoint(background_tasks: BackgroundTasks,
                          inventory: Inventory = Depends(get_inventory)) -> Response:
    """Fetch newly published chapters in the background."""
    if inventory.busy:
        raise HTTPException(status_code=503, detail=f"Inventory is {inventory.state.value}")
    background_tasks.add_task(background_update, inventory)
    return _accept("update")


@app.post("/admin/chapters/{index}", dependencies=[Depends(require_admin)])
async def patch_chapter_endpoint(index: int, inventory: Inventory = Depends(get_inventory)) -> Response:
    """Re-fetch a single chapter and wait for the result."""
    try:
        record = await inventory.patch_chapter(index)
    except InventoryBusyError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except MissingIndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except FetchError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return JSONResponse({
        "index": record.index,
        "name": record.name,
        "url": record.url,
        "length": len(record.text),
    })
