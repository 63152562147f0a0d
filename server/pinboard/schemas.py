# ─────────────────────────────────────────────────────────────────────────────
# Schemas — request bodies, stored documents, responses
# ─────────────────────────────────────────────────────────────────────────────
# Documents are stored and served with camelCase keys (imgLink, savedBy …).
# Python code uses snake_case; the alias generator maps between the two.
# ─────────────────────────────────────────────────────────────────────────────


from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        """Dump with wire/storage keys."""
        return self.model_dump(by_alias=True)


# ── Identity ─────────────────────────────────────────────────────────────────


class UserProfile(BaseModel):
    """The signed-in user as seen by the services (``getUserProfile``)."""

    user_id: str
    display_name: str = ""
    service: str = ""

    def as_reference(self) -> "UserRef":
        return UserRef(id=self.user_id, name=self.display_name, service=self.service)


class UserRef(_CamelModel):
    """Embedded user identity: pin owner or saver."""

    id: str = ""
    name: str = ""
    service: str = ""


# ── Pins ─────────────────────────────────────────────────────────────────────


class TagEntry(_CamelModel):
    tag: str


class PinSubmission(_CamelModel):
    """Body of POST /api/newpin."""

    owner: UserRef | None = None
    img_description: str = Field(min_length=1, max_length=500)
    img_link: str = Field(min_length=1)

    @field_validator("img_description")
    @classmethod
    def _description_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @field_validator("img_link")
    @classmethod
    def _link_not_blank(cls, value: str) -> str:
        # Kept verbatim: it becomes originalImgLink.
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class Pin(_CamelModel):
    """A persisted pin document."""

    id: str = Field(alias="_id")
    owner: UserRef
    img_description: str
    img_link: str
    original_img_link: str = ""
    is_broken: bool = False
    tags: list[TagEntry] = Field(default_factory=list)
    vision_api_tags: list[str] = Field(default_factory=list)
    saved_by: list[UserRef] = Field(default_factory=list)

    def saver_ids(self) -> list[str]:
        return [s.id for s in self.saved_by]


ListMode = Literal["profile", "all"]


# ── AI generation ────────────────────────────────────────────────────────────


class AIImageRequest(BaseModel):
    """Body of POST /api/AIimage."""

    description: str = ""


class AIImageResult(BaseModel):
    """Response of POST /api/AIimage. Fields are empty when generation failed."""

    model_config = ConfigDict(populate_by_name=True)

    img_url: str = Field(default="", alias="imgURL")
    title: str = ""
    id: str | None = Field(default=None, alias="_id")

    @classmethod
    def empty(cls) -> "AIImageResult":
        return cls(img_url="", title="", id=None)


# ── Audit ────────────────────────────────────────────────────────────────────


class PinLink(BaseModel):
    """Audit record written once per successful relocation."""

    model_config = ConfigDict(populate_by_name=True)

    img_link: str = Field(alias="imgLink")
    cloud_front_link: str = Field(alias="cloudFrontLink")
    pin_id: str


# ── Health ───────────────────────────────────────────────────────────────────


class LivenessResponse(BaseModel):
    status: str


class ReadinessResponse(BaseModel):
    status: str
    store_connected: bool
    storage_configured: bool
