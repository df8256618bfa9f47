"""Admin endpoints for key pool statistics."""

from typing import Dict

from fastapi import APIRouter, HTTPException, Request

admin_router = APIRouter(prefix="/admin", tags=["admin"])


@admin_router.get("/status")
async def get_all_status(request: Request) -> Dict[str, object]:
    """Get usage and rotation status of all API keys in the pool."""
    key_pool = request.app.state.key_pool
    status = key_pool.get_status()
    status["cursor"] = key_pool.cursor
    return status


@admin_router.get("/status/{key_id}")
async def get_key_status(request: Request, key_id: str) -> Dict[str, object]:
    """Get status of a specific API key."""
    key_pool = request.app.state.key_pool
    for entry in key_pool.snapshot():
        if entry["id"] == key_id:
            return entry
    raise HTTPException(status_code=404, detail=f"Key {key_id} not found")
