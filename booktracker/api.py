import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import Depends, FastAPI, HTTPException, Response, Security
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from booktracker.config import settings
from booktracker.database import (
    delete_snapshot,
    get_db_connection,
    get_snapshot,
    initialize_database,
    save_snapshot,
    snapshot_exists,
)
from booktracker.services.http_client import cleanup_http_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    initialize_database()
    logger.info(f"Snapshot store ready at {settings.db_file}")
    try:
        yield
    finally:
        await cleanup_http_client()


app = FastAPI(title=f"{settings.app_name} Snapshot API", version=settings.app_version, lifespan=lifespan)

# Library snapshots are large, repetitive JSON
app.add_middleware(GZipMiddleware, minimum_size=1000)

# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_api_key(api_key: str | None = Security(api_key_header)):
    """Dependency validating the API key."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(
        status_code=403,
        detail="Could not validate credentials",
    )


# --- Models ---
class SnapshotPayload(BaseModel):
    data: Dict[str, Any] = Field(..., description="Full library snapshot")


class SnapshotResponse(BaseModel):
    user_id: str
    data: Dict[str, Any]
    version: int
    updated_at: str


class SnapshotSaved(BaseModel):
    user_id: str
    version: int
    updated_at: str


# --- Health ---
@app.get("/health")
async def health():
    """Liveness plus a quick database round-trip."""
    db_ok = True
    try:
        conn = get_db_connection()
        try:
            conn.execute("SELECT 1")
        finally:
            conn.close()
    except Exception as e:
        logger.warning(f"Health check database probe failed: {e}")
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "db": db_ok,
        "version": settings.app_version,
    }


# --- Snapshots ---
@app.head("/users/{user_id}/snapshot", dependencies=[Depends(get_api_key)])
def head_snapshot(user_id: str):
    if not snapshot_exists(user_id):
        raise HTTPException(status_code=404, detail="Snapshot not found")
    return Response(status_code=200)


@app.get("/users/{user_id}/snapshot", response_model=SnapshotResponse, dependencies=[Depends(get_api_key)])
def read_snapshot(user_id: str):
    stored = get_snapshot(user_id)
    if stored is None:
        raise HTTPException(status_code=404, detail="Snapshot not found")
    return SnapshotResponse(user_id=user_id, **stored)


@app.put("/users/{user_id}/snapshot", response_model=SnapshotSaved, dependencies=[Depends(get_api_key)])
def write_snapshot(user_id: str, payload: SnapshotPayload):
    """Replace the stored snapshot. No merge: the last write wins."""
    if not user_id.strip():
        raise HTTPException(status_code=400, detail="user_id must not be blank")
    saved = save_snapshot(user_id, payload.data)
    logger.info(f"Snapshot v{saved['version']} stored for {user_id} ({len(payload.data.get('books') or [])} books)")
    return SnapshotSaved(user_id=user_id, **saved)


@app.delete("/users/{user_id}/snapshot", status_code=204, dependencies=[Depends(get_api_key)])
def remove_snapshot(user_id: str):
    if not delete_snapshot(user_id):
        raise HTTPException(status_code=404, detail="Snapshot not found")
    logger.info(f"Snapshot deleted for {user_id}")
    return Response(status_code=204)
