# ─────────────────────────────────────────────────────────────────────────────
# Image Sources — classify submitted links, decode inline payloads
# ─────────────────────────────────────────────────────────────────────────────


import base64
import binascii
import io
from dataclasses import dataclass
from urllib.parse import unquote_to_bytes, urlsplit

from PIL import Image, UnidentifiedImageError

DEFAULT_CONTENT_TYPE = "image/png"

_EXTENSIONS: dict[str, str] = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
    "image/svg+xml": "svg",
}


@dataclass(frozen=True)
class ImagePayload:
    """Image bytes plus the content type they will be stored under."""

    data: bytes
    content_type: str = DEFAULT_CONTENT_TYPE

    @property
    def extension(self) -> str:
        return _EXTENSIONS.get(self.content_type, "png")

    def as_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


def source_kind(source: str) -> str | None:
    """"url", "data", or None for anything that cannot be relocated."""
    source = source.strip()
    if source[:5].lower() == "data:":
        return "data"
    parts = urlsplit(source)
    if parts.scheme.lower() in ("http", "https") and parts.netloc:
        return "url"
    return None


def decode_data_uri(source: str) -> tuple[bytes, str]:
    """Decode ``data:[<mime>][;base64],<payload>`` → (bytes, declared mime).

    Raises ValueError on a malformed URI or an empty payload.
    """
    header, sep, payload = source.strip()[5:].partition(",")
    if not sep:
        raise ValueError("data URI has no payload separator")
    params = header.split(";")
    declared = params[0].strip().lower()
    if "base64" in (p.strip().lower() for p in params[1:]):
        try:
            data = base64.b64decode(payload, validate=True)
        except binascii.Error as e:
            raise ValueError(f"invalid base64 payload: {e}") from e
    else:
        data = unquote_to_bytes(payload)
    if not data:
        raise ValueError("data URI payload is empty")
    return data, declared


def sniff_content_type(data: bytes, declared: str = "") -> str:
    """Content type from the bytes themselves, then the declared type, then PNG."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            mime = image.get_format_mimetype()
        if mime:
            return mime
    except (UnidentifiedImageError, OSError, ValueError):
        pass
    declared = declared.split(";")[0].strip().lower()
    if declared.startswith("image/"):
        return declared
    return DEFAULT_CONTENT_TYPE
