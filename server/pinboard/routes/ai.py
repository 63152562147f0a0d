# ─────────────────────────────────────────────────────────────────────────────
# POST /api/AIimage — prompt → generated image + title (THIN)
# ─────────────────────────────────────────────────────────────────────────────


from fastapi import APIRouter, Depends, Request, Response

from pinboard.auth import require_user
from pinboard.dependencies import get_ai_image_generator
from pinboard.rate_limit import AI_IMAGE_LIMIT, limiter
from pinboard.schemas import AIImageRequest, UserProfile
from pinboard.services.ai_images import AIImageGenerator

router = APIRouter(prefix="/api")


@router.post("/AIimage", response_model=None)
@limiter.limit(AI_IMAGE_LIMIT)
async def generate_ai_image(
    request: Request,
    body: AIImageRequest,
    user: UserProfile = Depends(require_user),
    generator: AIImageGenerator = Depends(get_ai_image_generator),
) -> dict | Response:
    """204 when there is nothing to do (blank prompt, quota reached).

    Generation failures still answer 200 with empty fields.
    """
    result = await generator.generate(user, body.description)
    if result is None:
        return Response(status_code=204)
    return result.model_dump(by_alias=True)
