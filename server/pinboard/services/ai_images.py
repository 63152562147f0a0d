# ─────────────────────────────────────────────────────────────────────────────
# AI Image Generator — prompt → image URL + short title, per-user quota
# ─────────────────────────────────────────────────────────────────────────────


import structlog
from openai import AsyncOpenAI

from pinboard.config import Settings
from pinboard.pipeline.prompt_templates import clean_title, get_title_prompt
from pinboard.schemas import AIImageResult, UserProfile
from pinboard.store.documents import DocumentCollection

logger = structlog.get_logger(__name__)


class AIImageGenerator:
    """Generates an image and a title for it, then records the pair.

    ``generate`` returns None when there is nothing to do (blank prompt or
    quota reached) and an empty AIImageResult when anything downstream fails.
    It never raises.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        ai_images: DocumentCollection,
        settings: Settings,
    ) -> None:
        self._client = client
        self._ai_images = ai_images
        self._settings = settings

    async def generate(self, owner: UserProfile, prompt: str) -> AIImageResult | None:
        prompt = prompt.strip()
        if not prompt:
            logger.info("ai_image_skipped", user_id=owner.user_id, reason="empty_prompt")
            return None

        try:
            existing = await self._ai_images.count({"owner": owner.user_id})
            if existing >= self._settings.ai_image_quota:
                logger.info(
                    "ai_image_skipped",
                    user_id=owner.user_id,
                    reason="quota_reached",
                    existing=existing,
                    limit=self._settings.ai_image_quota,
                )
                return None

            image = await self._client.images.generate(
                model=self._settings.image_model,
                n=1,
                prompt=prompt,
                size=self._settings.image_size,
            )
            img_url = image.data[0].url

            completion = await self._client.chat.completions.create(
                model=self._settings.title_model,
                max_tokens=self._settings.title_max_tokens,
                messages=[{"role": "user", "content": get_title_prompt(prompt)}],
            )
            title = clean_title(completion.choices[0].message.content)

            record = await self._ai_images.create(
                {"imgURL": img_url, "title": title, "owner": owner.user_id}
            )
        except Exception:
            logger.exception("ai_image_failed", user_id=owner.user_id)
            return AIImageResult.empty()

        logger.info("ai_image_generated", user_id=owner.user_id, title=title, id=record["_id"])
        return AIImageResult(img_url=img_url, title=title, id=record["_id"])
