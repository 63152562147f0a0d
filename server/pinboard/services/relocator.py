# ─────────────────────────────────────────────────────────────────────────────
# Image Relocator — re-host submitted images in object storage
# ─────────────────────────────────────────────────────────────────────────────
# Accepts an http(s) URL or an inline data: URI, loads the bytes, uploads
# them under pins/<pin_id>.<ext> and records a PinLink audit entry.
# Failure is an outcome, not an exception: the caller keeps the original link.
# ─────────────────────────────────────────────────────────────────────────────


from dataclasses import dataclass

import httpx
import structlog

from pinboard.exceptions import (
    FetchFailedError,
    PinboardError,
    RelocationError,
    UnrelocatableError,
)
from pinboard.pipeline.sources import (
    ImagePayload,
    decode_data_uri,
    sniff_content_type,
    source_kind,
)
from pinboard.schemas import PinLink, UserProfile
from pinboard.storage.object_storage import ObjectStorage
from pinboard.store.documents import DocumentCollection

logger = structlog.get_logger(__name__)


@dataclass
class RelocationOutcome:
    """Result of one relocation attempt.

    ``link`` is set only on success. ``payload`` holds whatever bytes were
    loaded, even when the upload itself failed, so labeling can reuse them.
    """

    link: str | None = None
    payload: ImagePayload | None = None
    error: RelocationError | None = None

    @property
    def succeeded(self) -> bool:
        return self.link is not None


class ImageRelocator:
    """Loads images from URLs or data URIs and re-uploads them to storage."""

    def __init__(
        self,
        storage: ObjectStorage,
        http: httpx.AsyncClient,
        pin_links: DocumentCollection,
    ) -> None:
        self._storage = storage
        self._http = http
        self._pin_links = pin_links

    async def relocate(
        self, pin_id: str, owner: UserProfile, source: str
    ) -> RelocationOutcome:
        """Re-host ``source`` for ``pin_id``. Never raises."""
        outcome = RelocationOutcome()
        try:
            kind = source_kind(source)
            if kind is None:
                raise UnrelocatableError(source, "unsupported scheme")
            if not self._storage.is_configured:
                raise UnrelocatableError(source, "object storage credentials unavailable")

            outcome.payload = await self.load(source)
            key = f"pins/{pin_id}.{outcome.payload.extension}"
            try:
                link = await self._storage.upload(
                    key,
                    outcome.payload.data,
                    outcome.payload.content_type,
                    metadata={
                        "userId": owner.user_id,
                        "name": owner.display_name,
                        "service": owner.service,
                    },
                )
            except Exception as e:
                raise RelocationError(source, f"upload failed: {e}") from e

            outcome.link = link
            await self._record_link(pin_id, key, link)
        except RelocationError as e:
            outcome.error = e
            logger.warning(
                "relocation_failed",
                pin_id=pin_id,
                error_type=type(e).__name__,
                reason=e.reason,
            )
            return outcome

        logger.info(
            "image_relocated",
            pin_id=pin_id,
            link=outcome.link,
            content_type=outcome.payload.content_type,
            size=len(outcome.payload.data),
        )
        return outcome

    async def load(self, source: str) -> ImagePayload:
        """Fetch or decode the image bytes behind ``source``.

        Raises UnrelocatableError for unsupported schemes and
        FetchFailedError when the bytes cannot be obtained.
        """
        kind = source_kind(source)
        if kind == "data":
            try:
                data, declared = decode_data_uri(source)
            except ValueError as e:
                raise FetchFailedError(source, str(e)) from e
            return ImagePayload(data, sniff_content_type(data, declared))
        if kind == "url":
            try:
                response = await self._http.get(source.strip(), follow_redirects=True)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise FetchFailedError(source, f"HTTP {e.response.status_code}") from e
            except httpx.HTTPError as e:
                raise FetchFailedError(source, str(e) or type(e).__name__) from e
            declared = response.headers.get("content-type", "")
            return ImagePayload(response.content, sniff_content_type(response.content, declared))
        raise UnrelocatableError(source, "unsupported scheme")

    async def _record_link(self, pin_id: str, key: str, link: str) -> None:
        """Write the PinLink audit entry. A failed audit write is only logged."""
        record = PinLink(
            img_link=link,
            cloud_front_link=self._storage.cdn_link(key),
            pin_id=pin_id,
        )
        try:
            await self._pin_links.create(record.model_dump(by_alias=True))
        except PinboardError as e:
            logger.warning("pin_link_write_failed", pin_id=pin_id, error=e.message)
