# ─────────────────────────────────────────────────────────────────────────────
# Pin routes — /api CRUD surface (THIN)
# ─────────────────────────────────────────────────────────────────────────────
# Validation is Pydantic. Errors are exceptions. Logic is in the services.
# ─────────────────────────────────────────────────────────────────────────────


from fastapi import APIRouter, Body, Depends, Query, Request, Response

from pinboard.auth import get_user_profile, require_user
from pinboard.dependencies import get_link_scanner, get_pin_orchestrator
from pinboard.exceptions import AuthenticationRequiredError
from pinboard.rate_limit import CREATE_PIN_LIMIT, limiter
from pinboard.schemas import ListMode, PinSubmission, UserProfile, UserRef
from pinboard.services.pins import PinOrchestrator
from pinboard.services.scanner import BrokenLinkScanner

router = APIRouter(prefix="/api")


@router.post("/newpin")
@limiter.limit(CREATE_PIN_LIMIT)
async def create_pin(
    request: Request,
    submission: PinSubmission,
    user: UserProfile = Depends(require_user),
    orchestrator: PinOrchestrator = Depends(get_pin_orchestrator),
) -> dict:
    """Create a pin and return it before relocation and labeling finish."""
    pin = await orchestrator.create_pin(user, submission)
    return pin.to_document()


@router.get("/")
async def list_pins(
    request: Request,
    mode: ListMode = Query(default="all", alias="type"),
    orchestrator: PinOrchestrator = Depends(get_pin_orchestrator),
) -> list[dict]:
    """Every unbroken pin, or with ``?type=profile`` the viewer's own and saved pins."""
    viewer = get_user_profile(request)
    if mode == "profile" and viewer is None:
        raise AuthenticationRequiredError()
    return await orchestrator.list_pins(viewer, mode)


@router.get("/broken", status_code=204)
async def scan_broken_links(
    scanner: BrokenLinkScanner = Depends(get_link_scanner),
) -> Response:
    """Probe every pin image and flag the unreachable ones."""
    await scanner.scan()
    return Response(status_code=204)


@router.delete("/{pin_id}")
async def delete_pin(
    pin_id: str,
    user: UserProfile = Depends(require_user),
    orchestrator: PinOrchestrator = Depends(get_pin_orchestrator),
) -> dict:
    """Owners delete the pin; everyone else unsaves it."""
    pin = await orchestrator.delete_or_unsave(user, pin_id)
    return pin.to_document()


@router.put("/{pin_id}", response_model=None)
async def save_pin(
    pin_id: str,
    pinner: UserRef | None = Body(default=None),
    user: UserProfile = Depends(require_user),
    orchestrator: PinOrchestrator = Depends(get_pin_orchestrator),
) -> dict | Response:
    """Save someone else's pin. 204 when it is already saved or owned."""
    pin = await orchestrator.save_pin(user, pin_id, pinner)
    if pin is None:
        return Response(status_code=204)
    return pin.to_document()
