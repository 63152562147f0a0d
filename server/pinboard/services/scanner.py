# ─────────────────────────────────────────────────────────────────────────────
# Broken-Link Scanner — flag or repair pins whose image is unreachable
# ─────────────────────────────────────────────────────────────────────────────
# Externally triggered sweep over every non-broken pin. Takes no locks: a pin
# deleted mid-scan yields no document on update and is skipped.
# ─────────────────────────────────────────────────────────────────────────────


import asyncio
from dataclasses import dataclass, field

import httpx
import structlog
from opentelemetry import trace

from pinboard.pipeline.sources import source_kind
from pinboard.schemas import Pin
from pinboard.store.documents import DocumentCollection

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

# HEAD rejected outright; retry with a GET before calling the link dead.
_HEAD_UNSUPPORTED = frozenset({405, 501})


@dataclass
class ScanReport:
    checked: int = 0
    broken: list[str] = field(default_factory=list)
    repaired: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


class BrokenLinkScanner:
    """Probes pin image links and marks unreachable ones broken."""

    def __init__(
        self,
        pins: DocumentCollection,
        http: httpx.AsyncClient,
        concurrency: int = 8,
    ) -> None:
        self._pins = pins
        self._http = http
        self._concurrency = max(1, concurrency)

    async def scan(self) -> ScanReport:
        with tracer.start_as_current_span("scan_links") as span:
            documents = await self._pins.find({"isBroken": False})
            report = ScanReport()
            semaphore = asyncio.Semaphore(self._concurrency)

            async def _bounded(document: dict) -> None:
                async with semaphore:
                    await self._check(document, report)

            await asyncio.gather(*(_bounded(d) for d in documents))

            span.set_attribute("checked", report.checked)
            span.set_attribute("broken", len(report.broken))

        logger.info(
            "link_scan_complete",
            checked=report.checked,
            broken=len(report.broken),
            repaired=len(report.repaired),
            skipped=len(report.skipped),
        )
        return report

    async def _check(self, document: dict, report: ScanReport) -> None:
        """Check one pin. Every failure stays inside this pin."""
        pin_id = str(document.get("_id", ""))
        try:
            pin = Pin.model_validate(document)
            report.checked += 1
            if await self.is_reachable(pin.img_link):
                return

            if (
                pin.original_img_link
                and pin.original_img_link != pin.img_link
                and await self.is_reachable(pin.original_img_link)
            ):
                if await self._pins.find_by_id_and_update(
                    pin.id, {"imgLink": pin.original_img_link}
                ) is None:
                    report.skipped.append(pin.id)
                    return
                report.repaired.append(pin.id)
                logger.info("pin_link_repaired", pin_id=pin.id, link=pin.original_img_link)
                return

            if await self._pins.find_by_id_and_update(pin.id, {"isBroken": True}) is None:
                report.skipped.append(pin.id)
                return
            report.broken.append(pin.id)
            logger.info("pin_marked_broken", pin_id=pin.id, link=pin.img_link)
        except Exception as e:
            report.skipped.append(pin_id)
            logger.warning("pin_scan_failed", pin_id=pin_id, error=str(e))

    async def is_reachable(self, link: str) -> bool:
        """Lightweight reachability probe. Inline data links always count."""
        link = link.strip()
        kind = source_kind(link)
        if kind == "data":
            return True
        if kind is None:
            return False
        try:
            response = await self._http.head(link, follow_redirects=True)
            if response.status_code in _HEAD_UNSUPPORTED:
                response = await self._http.get(link, follow_redirects=True)
        except httpx.HTTPError as e:
            logger.debug("probe_failed", link=link, error=str(e) or type(e).__name__)
            return False
        return response.is_success
