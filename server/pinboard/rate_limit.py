# ─────────────────────────────────────────────────────────────────────────────
# Rate Limiting — slowapi, keyed by client IP
# ─────────────────────────────────────────────────────────────────────────────
# Pin creation and AI generation both call paid external services.
# ─────────────────────────────────────────────────────────────────────────────


from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

CREATE_PIN_LIMIT = "30/minute"
AI_IMAGE_LIMIT = "10/minute"
