# application/services/attachments.py
from __future__ import annotations
import hashlib
import logging
from typing import Optional, TYPE_CHECKING

from application.services.header_decoder import decode_encoded_words, decode_extended_parameter
from domain.models import HeaderFields, Message, MimeNode

if TYPE_CHECKING:
    from infrastructure.filesystem.storage import AttachmentStorage

logger = logging.getLogger(__name__)


def generate_attachment_id(headers: HeaderFields | Message, part_path: str) -> str:
    """
    Id reproducible: md5 de fecha, remitente, asunto, parte y Message-ID.
    No depende del contenido: el mismo adjunto en dos correos tiene ids distintos.
    """
    seed = "%s-%s-%s-%s-%s" % (
        headers.date or "",
        headers.from_address or "",
        headers.subject or "",
        part_path,
        headers.message_id or "",
    )
    return hashlib.md5(seed.encode("utf-8")).hexdigest()


def resolve_attachment_id(node: MimeNode, headers: HeaderFields | Message, part_path: str) -> Optional[str]:
    if node.disposition_id:
        explicit = node.disposition_id.strip(" <>\t\r\n")
        if explicit:
            return explicit
    if not node.param("filename") and not node.param("name"):
        return None
    return generate_attachment_id(headers, part_path)


def resolve_filename(node: MimeNode, attachment_id: str, server_charset: str = "utf-8") -> str:
    raw = node.param("filename") or node.param("name")
    if not raw:
        return f"{attachment_id}.{node.subtype.lower()}"
    name = decode_encoded_words(raw, server_charset)
    return decode_extended_parameter(name, server_charset)


def materialize(
    message: Message,
    attachment_id: str,
    file_name: str,
    data: bytes,
    storage: "AttachmentStorage | None",
) -> Optional[str]:
    # Sin directorio configurado no se toca el disco
    if storage is None:
        return None
    path = storage.save(
        message_id=message.id,
        attachment_id=attachment_id,
        file_name=file_name,
        message_date=message.date,
        data=data,
    )
    return str(path)
