# ─────────────────────────────────────────────────────────────────────────────
# Pin Orchestrator — pin creation, enrichment, listing, save/unsave/delete
# ─────────────────────────────────────────────────────────────────────────────
# Endpoints delegate here. This owns:
#   - Pin quota enforcement
#   - Phase 1: persist the pin and hand back the pre-enrichment record
#   - Phase 2 (background): relocate image → set imgLink → label → set tags
#   - Ownership-scoped listing and the visibility projection
#   - Save / unsave / delete
# ─────────────────────────────────────────────────────────────────────────────


import structlog
from opentelemetry import trace

from pinboard.config import Settings
from pinboard.exceptions import (
    LabelingError,
    PersistenceError,
    PinNotFoundError,
    QuotaExceededError,
)
from pinboard.schemas import (
    ListMode,
    Pin,
    PinSubmission,
    TagEntry,
    UserProfile,
    UserRef,
)
from pinboard.services.labeler import AutoLabeler
from pinboard.services.relocator import ImageRelocator
from pinboard.services.tasks import BackgroundTaskRunner
from pinboard.store.documents import DocumentCollection

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)


def filter_pins(
    pins: list[Pin], viewer: UserProfile | None, owner_only_fields: list[str]
) -> list[dict]:
    """Project pins for a viewer.

    ``owner`` and ``savedBy`` collapse to display names, ``owns`` and
    ``hasSaved`` describe the viewer's relation to each pin, and owner-only
    fields are dropped for everybody but the owner.
    """
    viewer_id = viewer.user_id if viewer else None
    filtered = []
    for pin in pins:
        owns = viewer_id is not None and viewer_id == pin.owner.id
        document = pin.to_document()
        document["owner"] = pin.owner.name
        document["savedBy"] = [s.name for s in pin.saved_by]
        document["owns"] = owns
        document["hasSaved"] = viewer_id is not None and viewer_id in pin.saver_ids()
        if not owns:
            for field in owner_only_fields:
                document.pop(field, None)
        filtered.append(document)
    return filtered


class PinOrchestrator:
    """Coordinates the pin store with the relocation and labeling services.

    Enrichment runs on the task runner after create_pin returns; the
    orchestrator is the only writer of imgLink/tags/visionApiTags during
    that window.
    """

    def __init__(
        self,
        pins: DocumentCollection,
        relocator: ImageRelocator,
        labeler: AutoLabeler,
        tasks: BackgroundTaskRunner,
        settings: Settings,
    ) -> None:
        self._pins = pins
        self._relocator = relocator
        self._labeler = labeler
        self._tasks = tasks
        self._settings = settings

    # ── Create ───────────────────────────────────────────────────────────────

    async def create_pin(self, owner: UserProfile, submission: PinSubmission) -> Pin:
        """Phase 1: quota check, persist, schedule enrichment, return the pin.

        Raises QuotaExceededError (nothing written) or PersistenceError.
        """
        with tracer.start_as_current_span("create_pin") as span:
            span.set_attribute("user_id", owner.user_id)

            owned = await self._pins.count({"owner.id": owner.user_id})
            if owned >= self._settings.pin_quota:
                logger.warning(
                    "pin_quota_exceeded",
                    user_id=owner.user_id,
                    owned=owned,
                    limit=self._settings.pin_quota,
                )
                raise QuotaExceededError(owner.user_id, self._settings.pin_quota)

            submitted_owner = submission.owner or owner.as_reference()
            document = {
                "owner": UserRef(
                    id=owner.user_id,
                    name=submitted_owner.name or owner.display_name,
                    service=submitted_owner.service or owner.service,
                ).to_document(),
                "imgDescription": submission.img_description,
                "imgLink": submission.img_link,
                "originalImgLink": submission.img_link,
                "isBroken": False,
                "tags": [],
                "visionApiTags": [],
                "savedBy": [],
            }
            pin = Pin.model_validate(await self._pins.create(document))
            span.set_attribute("pin_id", pin.id)

        logger.info(
            "pin_created",
            pin_id=pin.id,
            user_id=owner.user_id,
            display_name=owner.display_name,
            description=pin.img_description,
        )
        self._tasks.submit(self.enrich_pin(pin, owner), name=f"enrich:{pin.id}")
        return pin

    async def enrich_pin(self, pin: Pin, owner: UserProfile) -> Pin:
        """Phase 2: relocate, then label. Never raises.

        Relocation finishes (either way) before labeling starts because the
        labeler consumes the loaded bytes. Returns the last known pin state.
        """
        with tracer.start_as_current_span("enrich_pin") as span:
            span.set_attribute("pin_id", pin.id)
            try:
                return await self._enrich(pin, owner, span)
            except Exception:
                logger.exception("pin_enrichment_failed", pin_id=pin.id)
                return pin

    async def _enrich(self, pin: Pin, owner: UserProfile, span: trace.Span) -> Pin:
        outcome = await self._relocator.relocate(pin.id, owner, pin.original_img_link)
        span.set_attribute("relocated", outcome.succeeded)
        if outcome.succeeded:
            pin = await self._set_fields(pin, {"imgLink": outcome.link})

        image = outcome.payload if outcome.payload is not None else pin.img_link
        try:
            labels = await self._labeler.label(image)
        except LabelingError as e:
            logger.warning("labeling_failed", pin_id=pin.id, reason=e.reason)
            return pin

        span.set_attribute("labels", len(labels))
        pin = await self._set_fields(
            pin,
            {
                "tags": [TagEntry(tag=label).to_document() for label in labels],
                "visionApiTags": labels,
            },
        )
        logger.info("pin_enriched", pin_id=pin.id, link=pin.img_link, labels=labels)
        return pin

    async def _set_fields(self, pin: Pin, fields: dict) -> Pin:
        """Atomic $set on the pin. A pin deleted meanwhile keeps the local copy."""
        try:
            updated = await self._pins.find_by_id_and_update(pin.id, fields)
        except PersistenceError as e:
            logger.warning("pin_update_failed", pin_id=pin.id, fields=list(fields), error=e.message)
            return pin
        if updated is None:
            logger.info("pin_gone_during_enrichment", pin_id=pin.id)
            return pin
        return Pin.model_validate(updated)

    # ── Read ─────────────────────────────────────────────────────────────────

    async def list_pins(self, viewer: UserProfile | None, mode: ListMode = "all") -> list[dict]:
        if mode == "profile" and viewer is not None:
            owned = await self._pins.find({"owner.id": viewer.user_id})
            saved = await self._pins.find({"savedBy.id": viewer.user_id})
            seen: set[str] = set()
            documents = []
            for document in [*owned, *saved]:
                if document["_id"] not in seen:
                    seen.add(document["_id"])
                    documents.append(document)
        else:
            documents = await self._pins.find({"isBroken": False})

        pins = [Pin.model_validate(d) for d in documents]
        return filter_pins(pins, viewer, self._settings.owner_only_fields)

    async def get_pin(self, pin_id: str) -> Pin:
        document = await self._pins.find_by_id(pin_id)
        if document is None:
            raise PinNotFoundError(pin_id)
        return Pin.model_validate(document)

    # ── Delete / unsave ──────────────────────────────────────────────────────

    async def delete_or_unsave(self, actor: UserProfile, pin_id: str) -> Pin:
        """Owner deletes the pin; anyone else is removed from savedBy."""
        pin = await self.get_pin(pin_id)

        if actor.user_id == pin.owner.id:
            removed = await self._pins.find_one_and_remove({"_id": pin_id})
            if removed is None:
                raise PinNotFoundError(pin_id)
            logger.info(
                "pin_deleted",
                pin_id=pin_id,
                user_id=actor.user_id,
                description=pin.img_description,
            )
            return Pin.model_validate(removed)

        remaining = [s.to_document() for s in pin.saved_by if s.id != actor.user_id]
        updated = await self._pins.find_by_id_and_update(pin_id, {"savedBy": remaining})
        if updated is None:
            raise PinNotFoundError(pin_id)
        logger.info(
            "pin_unsaved",
            pin_id=pin_id,
            user_id=actor.user_id,
            description=pin.img_description,
        )
        return Pin.model_validate(updated)

    # ── Save ─────────────────────────────────────────────────────────────────

    async def save_pin(
        self, actor: UserProfile, pin_id: str, pinner: UserRef | None = None
    ) -> Pin | None:
        """Add the actor to savedBy. Returns None when there is nothing to do.

        The stored entry always carries the actor's id; name and service come
        from the request body when given.
        """
        pin = await self.get_pin(pin_id)

        if actor.user_id == pin.owner.id or actor.user_id in pin.saver_ids():
            logger.info(
                "pin_save_noop",
                pin_id=pin_id,
                user_id=actor.user_id,
                reason="owner" if actor.user_id == pin.owner.id else "already_saved",
            )
            return None

        pinner = pinner or actor.as_reference()
        entry = UserRef(
            id=actor.user_id,
            name=pinner.name or actor.display_name,
            service=pinner.service or actor.service,
        )
        saved_by = [*(s.to_document() for s in pin.saved_by), entry.to_document()]
        updated = await self._pins.find_by_id_and_update(pin_id, {"savedBy": saved_by})
        if updated is None:
            raise PinNotFoundError(pin_id)
        logger.info(
            "pin_saved",
            pin_id=pin_id,
            user_id=actor.user_id,
            description=pin.img_description,
        )
        return Pin.model_validate(updated)
