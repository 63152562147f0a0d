# ─────────────────────────────────────────────────────────────────────────────
# Dependency Injection — FastAPI Depends() providers
# ─────────────────────────────────────────────────────────────────────────────
# State flows: lifespan creates → app.state stores → Depends() injects.
# ─────────────────────────────────────────────────────────────────────────────


from fastapi import Request

from pinboard.services.ai_images import AIImageGenerator
from pinboard.services.pins import PinOrchestrator
from pinboard.services.scanner import BrokenLinkScanner
from pinboard.storage.object_storage import ObjectStorage
from pinboard.store.documents import DocumentStore


def get_document_store(request: Request) -> DocumentStore:
    return request.app.state.document_store


def get_object_storage(request: Request) -> ObjectStorage:
    return request.app.state.object_storage


def get_pin_orchestrator(request: Request) -> PinOrchestrator:
    return request.app.state.pin_orchestrator


def get_ai_image_generator(request: Request) -> AIImageGenerator:
    return request.app.state.ai_image_generator


def get_link_scanner(request: Request) -> BrokenLinkScanner:
    return request.app.state.link_scanner
