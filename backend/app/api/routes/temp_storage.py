"""Short-lived server-side scratch storage for client payloads."""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.services.temp_store import TempStore, get_temp_store

logger = logging.getLogger(__name__)

temp_storage_router = APIRouter(prefix="/temp-storage", tags=["temp-storage"])


@temp_storage_router.post("/store")
async def store_temp_data(
    data: Any = Body(...),
    store: TempStore = Depends(get_temp_store),
) -> dict:
    """Hold ``data`` for ``TEMP_STORAGE_TTL_SECONDS`` and return its id."""
    try:
        storage_id = await store.put(data, settings.TEMP_STORAGE_TTL_SECONDS)
    except Exception as e:
        logger.error("Error storing temporary data", extra={"error": str(e)})
        raise HTTPException(status_code=500, detail="Failed to store data")

    return {"success": True, "storageId": storage_id}


@temp_storage_router.get("/retrieve")
async def retrieve_temp_data(
    id: str | None = None,
    store: TempStore = Depends(get_temp_store),
):
    if not id:
        raise HTTPException(status_code=400, detail="Storage ID is required")

    try:
        lookup = await store.get(id)
    except Exception as e:
        logger.error("Error retrieving temporary data", extra={"storage_id": id, "error": str(e)})
        raise HTTPException(status_code=500, detail="Failed to retrieve data")

    if lookup.status == "missing":
        raise HTTPException(status_code=404, detail="Data not found or expired")
    if lookup.status == "expired":
        raise HTTPException(status_code=410, detail="Data expired")

    return JSONResponse(content=lookup.data)


@temp_storage_router.delete("/delete")
async def delete_temp_data(
    id: str | None = None,
    store: TempStore = Depends(get_temp_store),
) -> dict:
    if not id:
        raise HTTPException(status_code=400, detail="Storage ID is required")

    try:
        deleted = await store.delete(id)
    except Exception as e:
        logger.error("Error deleting temporary data", extra={"storage_id": id, "error": str(e)})
        raise HTTPException(status_code=500, detail="Failed to delete data")

    return {"success": True, "deleted": deleted}
