# ─────────────────────────────────────────────────────────────────────────────
# Health Check Routes — liveness and readiness
# ─────────────────────────────────────────────────────────────────────────────
#   /health        → Liveness probe. "Is the process alive?" No I/O.
#   /health/ready  → Readiness probe. 503 until the document store is up.
#                    Object storage is reported but never blocks readiness:
#                    without it pins are simply not relocated.
# ─────────────────────────────────────────────────────────────────────────────

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from pinboard.dependencies import get_document_store, get_object_storage
from pinboard.schemas import LivenessResponse, ReadinessResponse
from pinboard.storage.object_storage import ObjectStorage
from pinboard.store.documents import DocumentStore

router = APIRouter()


@router.get("/health", response_model=LivenessResponse)
async def liveness() -> LivenessResponse:
    return LivenessResponse(status="ok")


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness(
    store: DocumentStore = Depends(get_document_store),
    storage: ObjectStorage = Depends(get_object_storage),
) -> JSONResponse:
    """Readiness probe — can this instance serve traffic?"""
    ready = store.is_connected

    response = ReadinessResponse(
        status="ready" if ready else "not_ready",
        store_connected=store.is_connected,
        storage_configured=storage.is_configured,
    )

    return JSONResponse(
        status_code=200 if ready else 503,
        content=response.model_dump(),
    )
