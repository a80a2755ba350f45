# domain/models.py
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Optional


class TransferEncoding(str, Enum):
    SEVEN_BIT = "7bit"
    EIGHT_BIT = "8bit"
    BINARY = "binary"
    BASE64 = "base64"
    QUOTED_PRINTABLE = "quoted-printable"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | bytes | None) -> "TransferEncoding":
        if isinstance(value, bytes):
            value = value.decode("ascii", errors="ignore")
        raw = (value or "").strip().lower()
        if not raw:
            return cls.SEVEN_BIT
        for enc in cls:
            if enc.value == raw:
                return enc
        return cls.UNKNOWN


# Tipos MIME "discretos" que se tratan como adjunto aunque no traigan nombre
BINARY_TYPES = frozenset({"application", "image", "audio", "video", "font", "model"})


@dataclass(frozen=True)
class MimeNode:
    type: str
    subtype: str
    encoding: TransferEncoding = TransferEncoding.SEVEN_BIT
    parameters: dict[str, str] = field(default_factory=dict)
    disposition: Optional[str] = None
    disposition_id: Optional[str] = None
    children: tuple["MimeNode", ...] = ()
    # Bytes crudos ya disponibles (árbol reconstruido desde un message/rfc822)
    content: Optional[bytes] = None

    @property
    def mime_type(self) -> str:
        return f"{self.type}/{self.subtype}"

    @property
    def kind(self) -> str:
        if self.type == "multipart":
            return "multipart"
        if self.type == "message" and self.subtype == "rfc822":
            return "rfc822"
        if self.type == "text":
            return "text"
        if self.type == "message":
            return "message"
        if self.type in BINARY_TYPES:
            return "binary"
        return "unknown"

    def param(self, name: str) -> str:
        return self.parameters.get(name.lower()) or ""


class Address(NamedTuple):
    address: str
    name: Optional[str] = None


@dataclass
class HeaderFields:
    date: str = ""
    subject: str = ""
    message_id: Optional[str] = None
    in_reply_to: Optional[str] = None
    references: Optional[str] = None
    from_name: Optional[str] = None
    from_address: Optional[str] = None
    to: list[Address] = field(default_factory=list)
    cc: list[Address] = field(default_factory=list)
    reply_to: list[Address] = field(default_factory=list)
    to_string: str = ""


@dataclass
class Attachment:
    id: str
    name: str
    orig_name: Optional[str] = None
    orig_filename: Optional[str] = None
    file_path: Optional[str] = None
    content_type: str = "application/octet-stream"
    size: int = 0


@dataclass(frozen=True)
class DecodeAnomaly:
    part_path: str
    kind: str
    detail: str


@dataclass
class Message:
    id: str
    date: str = ""
    subject: str = ""
    message_id: Optional[str] = None
    in_reply_to: Optional[str] = None
    references: Optional[str] = None
    from_name: Optional[str] = None
    from_address: Optional[str] = None
    to: list[Address] = field(default_factory=list)
    cc: list[Address] = field(default_factory=list)
    reply_to: list[Address] = field(default_factory=list)
    to_string: str = ""
    text_plain: str = ""
    text_html: str = ""
    attachments: dict[str, Attachment] = field(default_factory=dict)
    anomalies: list[DecodeAnomaly] = field(default_factory=list)

    @classmethod
    def from_headers(cls, message_id: str, headers: HeaderFields) -> "Message":
        return cls(
            id=str(message_id),
            date=headers.date,
            subject=headers.subject,
            message_id=headers.message_id,
            in_reply_to=headers.in_reply_to,
            references=headers.references,
            from_name=headers.from_name,
            from_address=headers.from_address,
            to=list(headers.to),
            cc=list(headers.cc),
            reply_to=list(headers.reply_to),
            to_string=headers.to_string,
        )

    def add_attachment(self, attachment: Attachment) -> None:
        self.attachments[attachment.id] = attachment

    def get_attachments(self) -> list[Attachment]:
        return list(self.attachments.values())

    def get_internal_links_placeholders(self) -> dict[str, str]:
        from application.services.inline_references import find_inline_placeholders
        return find_inline_placeholders(self.text_html)

    def resolve_inline_html(self, base_uri: str) -> str:
        """
        Devuelve text_html con las referencias cid:/cd: sustituidas por
        <base_uri>/<fichero del adjunto>. No modifica el mensaje.
        """
        from application.services.inline_references import resolve_inline_references
        return resolve_inline_references(self.text_html, base_uri, self.attachments)
