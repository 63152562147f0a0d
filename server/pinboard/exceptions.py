# ─────────────────────────────────────────────────────────────────────────────
# Custom Exceptions + FastAPI Exception Handlers
# ─────────────────────────────────────────────────────────────────────────────


import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


# ── Exception hierarchy ──────────────────────────────────────────────────────


class PinboardError(Exception):
    """Base exception for all pinboard errors."""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class AuthenticationRequiredError(PinboardError):
    """Raised when a route needs a signed-in user and none was supplied."""

    def __init__(self):
        super().__init__("Authentication required", status_code=401)


class QuotaExceededError(PinboardError):
    """Raised when a user has reached a creation limit. No state is written."""

    def __init__(self, user_id: str, limit: int, kind: str = "pin"):
        self.user_id = user_id
        self.limit = limit
        super().__init__(
            f"UserID: {user_id} has reached the {kind} creation limit - aborted!",
            status_code=403,
        )


class PinNotFoundError(PinboardError):
    """Raised when the referenced pin does not exist."""

    def __init__(self, pin_id: str):
        self.pin_id = pin_id
        super().__init__(f"Pin '{pin_id}' not found", status_code=404)


class PersistenceError(PinboardError):
    """Raised when the document store rejects a read or write."""

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        super().__init__(f"Persistence failed during {operation}: {reason}", status_code=500)


# ── Enrichment failures ──────────────────────────────────────────────────────
# Never reach the handlers below: the pipeline catches and logs them.


class EnrichmentError(PinboardError):
    """Base for best-effort enrichment failures."""


class RelocationError(EnrichmentError):
    """Re-hosting an image in object storage failed."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Relocation failed for '{_abbreviate(source)}': {reason}")


class UnrelocatableError(RelocationError):
    """The source cannot be relocated at all (bad scheme, no storage credentials)."""


class FetchFailedError(RelocationError):
    """The image bytes could not be fetched or decoded."""


class LabelingError(EnrichmentError):
    """The vision service call failed or returned something unusable."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Labeling failed: {reason}")


def _abbreviate(source: str, limit: int = 80) -> str:
    """Keep inline payloads out of error messages and logs."""
    return source if len(source) <= limit else f"{source[:limit]}..."


# ── Handler registration ────────────────────────────────────────────────────


def register_exception_handlers(app: FastAPI) -> None:
    """Register all custom exception handlers on the FastAPI app.

    Services raise PinboardError subclasses; these handlers catch them
    and return structured JSON, so endpoints carry no try/except.
    """

    @app.exception_handler(PinboardError)
    async def pinboard_error_handler(request: Request, exc: PinboardError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "pinboard_error",
            error=exc.message,
            error_type=type(exc).__name__,
            path=request.url.path,
            exc_info=exc if exc.status_code >= 500 else None,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message, "type": type(exc).__name__},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled_error", error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "type": "UnhandledError"},
        )
