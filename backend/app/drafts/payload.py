"""Proof payload variants carried by a draft between storage tiers.

A proof is always one of three tagged shapes:

- ``InlinePayload``: media embedded in the draft as base64, with its MIME type
- ``HostedPayload``: media already uploaded to the object store
- ``PointerPayload``: inline media evicted to browser storage under ``object_key``

Every tier serializes exactly these shapes. Older drafts that stored a bare
data URI, a URL or an untyped base64 string are converted by
:func:`coerce_payload` on read.
"""

import base64
import binascii
import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

MIME_EXTENSIONS: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "video/mp4": "mp4",
    "video/quicktime": "mov",
}

VIDEO_EXTENSIONS = {"mp4", "mov", "webm", "m4v"}

# Fallback MIME type for untyped legacy payloads we cannot sniff
LEGACY_DEFAULT_MIME = "image/jpeg"


class InvalidPayloadError(ValueError):
    """Raised when a value cannot be interpreted as a proof payload."""


class InlinePayload(BaseModel):
    kind: Literal["inline"] = "inline"
    mime_type: str
    data: str = Field(description="Base64 body without the data URI prefix")

    @property
    def media_kind(self) -> Literal["image", "video"]:
        return "video" if self.mime_type.startswith("video/") else "image"

    @property
    def extension(self) -> str:
        return MIME_EXTENSIONS.get(self.mime_type, self.mime_type.rsplit("/", 1)[-1] or "bin")

    @property
    def approx_size(self) -> int:
        """Decoded size in bytes, computed without decoding."""
        padding = self.data.count("=", max(len(self.data) - 2, 0))
        return len(self.data) * 3 // 4 - padding

    def content(self) -> bytes:
        try:
            return base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidPayloadError(f"Proof data is not valid base64: {e}") from e

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


class HostedPayload(BaseModel):
    kind: Literal["hosted"] = "hosted"
    url: str
    media_kind: Literal["image", "video"]
    file_name: str | None = Field(None, description="Object-store path, used for cleanup")


class PointerPayload(BaseModel):
    kind: Literal["pointer"] = "pointer"
    object_key: str


DraftPayload = Annotated[
    Union[InlinePayload, HostedPayload, PointerPayload],
    Field(discriminator="kind"),
]

_payload_adapter: TypeAdapter = TypeAdapter(DraftPayload)


def parse_data_uri(value: str) -> InlinePayload:
    """Split ``data:<mime>;base64,<body>`` into an InlinePayload."""
    if not value.startswith("data:"):
        raise InvalidPayloadError("Not a data URI")
    header, sep, body = value[5:].partition(",")
    if not sep or not header.endswith(";base64"):
        raise InvalidPayloadError("Only base64 data URIs are supported")
    mime_type = header[: -len(";base64")] or LEGACY_DEFAULT_MIME
    return InlinePayload(mime_type=mime_type.lower(), data=body)


def sniff_mime_type(b64: str) -> str | None:
    """Guess a MIME type from the magic bytes at the start of base64 data."""
    head = b64[:32]
    head = head[: len(head) - len(head) % 4]
    try:
        raw = base64.b64decode(head)
    except (binascii.Error, ValueError):
        return None

    if raw.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if raw.startswith(b"\x89PNG"):
        return "image/png"
    if raw.startswith(b"GIF8"):
        return "image/gif"
    if raw[4:8] == b"ftyp":
        return "video/quicktime" if raw[8:12] == b"qt  " else "video/mp4"
    return None


def repair_untyped_base64(value: str) -> InlinePayload:
    """Re-wrap a legacy base64 string that lost its data URI prefix."""
    mime_type = sniff_mime_type(value)
    if mime_type is None:
        logger.warning(
            "Untyped proof payload could not be sniffed, assuming image",
            extra={"payload_length": len(value), "assumed_mime": LEGACY_DEFAULT_MIME},
        )
        mime_type = LEGACY_DEFAULT_MIME
    return InlinePayload(mime_type=mime_type, data=value)


def media_kind_from_url(url: str) -> Literal["image", "video"]:
    path = url.split("?", 1)[0]
    ext = path.rsplit(".", 1)[-1].lower() if "." in path.rsplit("/", 1)[-1] else ""
    return "video" if ext in VIDEO_EXTENSIONS else "image"


def coerce_payload(value: Any, allow_untyped: bool = True) -> InlinePayload | HostedPayload | PointerPayload | None:
    """Turn whatever a tier stored into a tagged payload.

    Args:
        value: A payload model, tagged dict, data URI, URL or legacy base64
        allow_untyped: Accept bare base64 (read path). Writers pass False so
            new drafts are always stored with an explicit MIME type.

    Raises:
        InvalidPayloadError: If ``value`` has no recognizable shape
    """
    if value is None or value == "":
        return None
    if isinstance(value, (InlinePayload, HostedPayload, PointerPayload)):
        return value
    if isinstance(value, dict):
        try:
            return _payload_adapter.validate_python(value)
        except ValidationError as e:
            raise InvalidPayloadError(f"Unrecognized proof payload: {e.error_count()} error(s)") from e
    if isinstance(value, str):
        if value.startswith("data:"):
            return parse_data_uri(value)
        if value.startswith(("http://", "https://")):
            return HostedPayload(url=value, media_kind=media_kind_from_url(value))
        if not allow_untyped:
            raise InvalidPayloadError("Proof data must be a data URI carrying its MIME type")
        return repair_untyped_base64(value)
    raise InvalidPayloadError(f"Unsupported proof payload type: {type(value).__name__}")
