# ─────────────────────────────────────────────────────────────────────────────
# Auto-Labeler — vision labels for pin images + the shared label catalog
# ─────────────────────────────────────────────────────────────────────────────
# The vision model is asked for a JSON array of labels. New labels land in
# the "tags" collection once; a cachetools LRU remembers labels already
# known so hot labels skip the collection lookup.
# ─────────────────────────────────────────────────────────────────────────────


import json
import re

import structlog
from cachetools import LRUCache
from openai import AsyncOpenAI, OpenAIError

from pinboard.exceptions import LabelingError, PinboardError
from pinboard.pipeline.prompt_templates import get_label_prompt
from pinboard.pipeline.sources import ImagePayload
from pinboard.store.documents import DocumentCollection

logger = structlog.get_logger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def parse_labels(content: str | None, limit: int) -> list[str]:
    """Parse the model's reply into unique labels, service order kept.

    Raises LabelingError if the reply is not a JSON array of strings.
    """
    text = _FENCE.sub("", (content or "").strip())
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise LabelingError(f"reply is not JSON: {e.msg}") from e
    if not isinstance(raw, list):
        raise LabelingError("reply is not a JSON array")

    labels: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            continue
        label = item.strip()
        if label and label not in labels:
            labels.append(label)
        if len(labels) >= limit:
            break
    return labels


class LabelCatalog:
    """Deduplicated set of every label seen system-wide."""

    def __init__(self, tags: DocumentCollection, cache_size: int = 1024) -> None:
        self._tags = tags
        self._known: LRUCache = LRUCache(maxsize=cache_size)

    async def remember(self, labels: list[str]) -> list[str]:
        """Insert labels not yet cataloged. Returns the ones inserted.

        Concurrent labeling may insert the same label twice; that is tolerated.
        Failures are logged per label and never raised.
        """
        inserted: list[str] = []
        for label in labels:
            if label in self._known:
                continue
            try:
                if await self._tags.count({"tag": label}) == 0:
                    await self._tags.create({"tag": label})
                    inserted.append(label)
                self._known[label] = True
            except PinboardError as e:
                logger.warning("label_catalog_write_failed", label=label, error=e.message)
        if inserted:
            logger.info("labels_cataloged", labels=inserted)
        return inserted


class AutoLabeler:
    """Requests descriptive labels for an image from a vision chat model."""

    def __init__(
        self,
        client: AsyncOpenAI,
        catalog: LabelCatalog,
        model: str = "gpt-4o-mini",
        max_labels: int = 10,
    ) -> None:
        self._client = client
        self._catalog = catalog
        self._model = model
        self._max_labels = max_labels

    async def label(self, image: ImagePayload | str) -> list[str]:
        """Label an image given as loaded bytes or as a link.

        Raises LabelingError on any service or parse failure. Catalog
        insertion is best-effort and happens before returning.
        """
        image_url = image.as_data_url() if isinstance(image, ImagePayload) else image
        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": get_label_prompt(self._max_labels)},
                            {"type": "image_url", "image_url": {"url": image_url}},
                        ],
                    }
                ],
            )
            content = completion.choices[0].message.content
        except OpenAIError as e:
            raise LabelingError(str(e)) from e
        except (IndexError, AttributeError) as e:
            raise LabelingError("empty reply from vision service") from e

        labels = parse_labels(content, self._max_labels)
        await self._catalog.remember(labels)
        return labels
