"""Normalized, channel-independent conversation models.

Every channel adapter turns its native webhook payload into one of the
`ConversationEvent` variants below; the `kind` field is the discriminant.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Optional, Union

from ...core.exceptions import PayloadParseError


@dataclass(frozen=True)
class InlineAttachment:
    """Attachment whose bytes travel with the event (base64)."""

    mime_type: str
    data_base64: str
    caption: Optional[str] = None
    kind: Literal["inline"] = "inline"


@dataclass(frozen=True)
class FileAttachment:
    """Attachment referenced by a remote URI."""

    mime_type: str
    file_uri: str
    caption: Optional[str] = None
    kind: Literal["file"] = "file"


MediaAttachment = Union[InlineAttachment, FileAttachment]


@dataclass(frozen=True)
class Contact:
    phone: str
    name: str


@dataclass(frozen=True)
class MessageEvent:
    text: Optional[str] = None
    attachments: tuple[MediaAttachment, ...] = field(default_factory=tuple)
    contact: Optional[Contact] = None
    own_phone: Optional[str] = None
    kind: Literal["message"] = "message"


@dataclass(frozen=True)
class EditEvent:
    on_message_id: str
    text: Optional[str] = None
    attachments: tuple[MediaAttachment, ...] = field(default_factory=tuple)
    contact: Optional[Contact] = None
    own_phone: Optional[str] = None
    kind: Literal["edit"] = "edit"


@dataclass(frozen=True)
class ReactionEvent:
    on_message_id: str
    reaction: str
    kind: Literal["reaction"] = "reaction"


ConversationEvent = Union[MessageEvent, EditEvent, ReactionEvent]


@dataclass(frozen=True)
class ImageReply:
    """Outbound image: exactly one of `link` or `data` (base64 or data URL)."""

    link: Optional[str] = None
    data: Optional[str] = None
    caption: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.link is None) == (self.data is None):
            raise ValueError("ImageReply requires exactly one of link or data")

    def data_url(self, default_mime_type: str = "image/jpeg") -> str:
        data = self.data or ""
        if data.startswith("data:"):
            return data
        return f"data:{default_mime_type};base64,{data}"

    def decoded(self, default_mime_type: str = "image/jpeg") -> tuple[bytes, str]:
        """Raw bytes and MIME type of inline `data`, which may be a data URL."""
        data = self.data or ""
        mime_type = default_mime_type
        if data.startswith("data:") and ";base64," in data:
            header, data = data.split(";base64,", 1)
            mime_type = header[len("data:") :] or default_mime_type
        return base64.b64decode(data), mime_type


def attachment_to_dict(attachment: MediaAttachment) -> dict[str, Any]:
    out: dict[str, Any] = {"kind": attachment.kind, "mime_type": attachment.mime_type}
    if isinstance(attachment, InlineAttachment):
        out["data_base64"] = attachment.data_base64
    else:
        out["file_uri"] = attachment.file_uri
    if attachment.caption is not None:
        out["caption"] = attachment.caption
    return out


def attachment_from_dict(raw: Mapping[str, Any]) -> MediaAttachment:
    kind = raw.get("kind")
    caption = raw.get("caption")
    if kind == "inline":
        return InlineAttachment(
            mime_type=str(raw["mime_type"]),
            data_base64=str(raw["data_base64"]),
            caption=caption,
        )
    if kind == "file":
        return FileAttachment(
            mime_type=str(raw["mime_type"]),
            file_uri=str(raw["file_uri"]),
            caption=caption,
        )
    raise PayloadParseError(f"Unknown attachment kind: {kind!r}")


def event_to_dict(event: ConversationEvent) -> dict[str, Any]:
    if isinstance(event, ReactionEvent):
        return {
            "kind": event.kind,
            "on_message_id": event.on_message_id,
            "reaction": event.reaction,
        }
    out: dict[str, Any] = {"kind": event.kind}
    if isinstance(event, EditEvent):
        out["on_message_id"] = event.on_message_id
    if event.text is not None:
        out["text"] = event.text
    if event.attachments:
        out["attachments"] = [attachment_to_dict(a) for a in event.attachments]
    if event.contact is not None:
        out["contact"] = {"phone": event.contact.phone, "name": event.contact.name}
    if event.own_phone is not None:
        out["own_phone"] = event.own_phone
    return out


def event_from_dict(raw: Mapping[str, Any]) -> ConversationEvent:
    kind = raw.get("kind", "message")
    if kind == "reaction":
        return ReactionEvent(
            on_message_id=str(raw["on_message_id"]), reaction=str(raw["reaction"])
        )
    contact_raw = raw.get("contact")
    contact = (
        Contact(phone=str(contact_raw["phone"]), name=str(contact_raw["name"]))
        if isinstance(contact_raw, Mapping)
        else None
    )
    attachments = tuple(
        attachment_from_dict(item) for item in raw.get("attachments") or ()
    )
    if kind == "edit":
        return EditEvent(
            on_message_id=str(raw["on_message_id"]),
            text=raw.get("text"),
            attachments=attachments,
            contact=contact,
            own_phone=raw.get("own_phone"),
        )
    if kind == "message":
        return MessageEvent(
            text=raw.get("text"),
            attachments=attachments,
            contact=contact,
            own_phone=raw.get("own_phone"),
        )
    raise PayloadParseError(f"Unknown conversation event kind: {kind!r}")
