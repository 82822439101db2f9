from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

EnvelopeStatus = Literal["draft", "sent", "completed", "expired", "declined", "cancelled"]
RecipientRole = Literal["signer", "in_person", "cc", "approver"]
TagType = Literal["signature", "approval", "text", "date_of_signature", "checkbox"]
DownloadOutput = Literal["combined", "separate", "only_log"]
Positioning = Literal[
    "top_left",
    "top_center",
    "top_right",
    "middle_left",
    "center",
    "middle_right",
    "bottom_left",
    "bottom_center",
    "bottom_right",
]


class Credentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_key: str
    secret_key: str

    def __repr__(self) -> str:
        return "Credentials(access_key=***, secret_key=***)"


class SessionToken(BaseModel):
    """Bearer token returned by /api/auth-token; `exp` is epoch seconds."""

    token: str
    exp: int

    def is_valid(self, now: int, buffer_s: int = 60) -> bool:
        return now < self.exp - buffer_s


class JsonResult(BaseModel):
    kind: Literal["json"] = "json"
    value: Any = None


class EmptyResult(BaseModel):
    kind: Literal["empty"] = "empty"


class BinaryResult(BaseModel):
    kind: Literal["binary"] = "binary"
    content_type: str
    content: bytes


ApiResult = Annotated[Union[JsonResult, EmptyResult, BinaryResult], Field(discriminator="kind")]


class PlaceholderPlacement(BaseModel):
    """Tag anchored to a text string found in the document's text layer."""

    model_config = ConfigDict(frozen=True)

    mode: Literal["placeholder"] = "placeholder"
    placeholder: str = Field(..., min_length=1)
    positioning: Optional[Positioning] = None
    document_id: Optional[str] = None


class CoordinatePlacement(BaseModel):
    """Tag placed at a fixed point (in points) on a given page."""

    model_config = ConfigDict(frozen=True)

    mode: Literal["coordinate"] = "coordinate"
    document_id: str
    page: int
    x_position: Union[int, float]
    y_position: Union[int, float]


TagPlacement = Annotated[Union[PlaceholderPlacement, CoordinatePlacement], Field(discriminator="mode")]
