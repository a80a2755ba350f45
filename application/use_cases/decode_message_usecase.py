# application/use_cases/decode_message_usecase.py
from __future__ import annotations
import logging
from typing import Optional, TYPE_CHECKING

from application.services.attachments import (
    generate_attachment_id,
    materialize,
    resolve_attachment_id,
    resolve_filename,
)
from application.services.rfc822_parser import parse_embedded_message
from application.services.transcoder import decode_transfer_encoding, transcode
from domain.errors import FetchError, MaterializationError
from domain.models import Attachment, DecodeAnomaly, HeaderFields, Message, MimeNode
from domain.ports import MailConnection

if TYPE_CHECKING:
    from infrastructure.filesystem.storage import AttachmentStorage

logger = logging.getLogger(__name__)


class DecodeMessageUseCase:
    """
    Recorre el árbol MIME (profundidad, preorden) y rellena un Message:
    text_plain, text_html y adjuntos. Una sola conexión, sin concurrencia.
    """

    def __init__(
        self,
        *,
        connection: MailConnection,
        storage: "AttachmentStorage | None" = None,
        server_encoding: str = "UTF-8",
    ) -> None:
        self.connection = connection
        self.storage = storage
        self.server_encoding = server_encoding

    def decode_message(
        self,
        message_id: int | str,
        structure: MimeNode,
        headers: HeaderFields,
        mark_as_seen: bool = True,
    ) -> Message:
        message = Message.from_headers(str(message_id), headers)
        ctx = _WalkContext(uid=message_id, message=message, peek=not mark_as_seen)

        if structure.kind == "multipart" and structure.children:
            for i, child in enumerate(structure.children):
                self._walk(ctx, child, str(i + 1))
        else:
            # mensaje de una sola parte: el cuerpo es BODY[1]
            self._walk(ctx, structure, "1")

        logger.info(
            "Mensaje %s decodificado: %d adjuntos, %d anomalías",
            message.id, len(message.attachments), len(message.anomalies),
        )
        return message

    # ───────── recorrido ─────────
    def _walk(self, ctx: "_WalkContext", node: MimeNode, part_path: str) -> None:
        kind = node.kind
        if kind == "multipart":
            if not node.children:
                self._anomaly(ctx, part_path, "empty-multipart", node.mime_type)
            for i, child in enumerate(node.children):
                self._walk(ctx, child, f"{part_path}.{i + 1}")
            return

        if kind == "rfc822":
            # BODY[n] de un message/rfc822 trae también sus cabeceras: el árbol
            # interno sale siempre de los bytes crudos y comparte la ruta del contenedor
            root = self._split_embedded(ctx, node, part_path)
            if root is not None:
                self._walk(ctx, root, part_path)
            return

        if node.children:
            for i, child in enumerate(node.children):
                self._walk(ctx, child, f"{part_path}.{i + 1}")
            return

        self._leaf(ctx, node, part_path)

    def _split_embedded(self, ctx: "_WalkContext", node: MimeNode, part_path: str) -> Optional[MimeNode]:
        raw = decode_transfer_encoding(self._fetch(ctx, node, part_path), node.encoding)
        if not raw.strip():
            self._anomaly(ctx, part_path, "empty-rfc822", node.mime_type)
            return None
        return parse_embedded_message(raw)

    def _fetch(self, ctx: "_WalkContext", node: MimeNode, part_path: str) -> bytes:
        if node.content is not None:
            return node.content
        try:
            return self.connection.fetch_part_body(ctx.uid, part_path, peek=ctx.peek)
        except Exception as exc:
            raise FetchError(str(ctx.uid), part_path, str(exc)) from exc

    def _leaf(self, ctx: "_WalkContext", node: MimeNode, part_path: str) -> None:
        message = ctx.message
        attachment_id = resolve_attachment_id(node, message, part_path)
        if attachment_id is None and node.kind == "binary":
            attachment_id = generate_attachment_id(message, part_path)

        if attachment_id is None and node.kind not in ("text", "message"):
            self._anomaly(ctx, part_path, "unknown-type", node.mime_type)
            return

        data = decode_transfer_encoding(self._fetch(ctx, node, part_path), node.encoding)

        if attachment_id is not None:
            self._attachment(ctx, node, part_path, attachment_id, data)
        elif node.kind == "text":
            text = self._to_utf8(ctx, node, part_path, data)
            if node.subtype == "plain":
                message.text_plain += text
            else:
                message.text_html += text
        elif data.strip():
            message.text_plain += self._to_utf8(ctx, node, part_path, data).strip()

    def _attachment(self, ctx: "_WalkContext", node: MimeNode, part_path: str, attachment_id: str, data: bytes) -> None:
        message = ctx.message
        attachment = Attachment(
            id=attachment_id,
            name=resolve_filename(node, attachment_id, self.server_encoding),
            orig_name=node.param("name") or None,
            orig_filename=node.param("filename") or None,
            content_type=node.mime_type,
            size=len(data),
        )
        try:
            attachment.file_path = materialize(message, attachment_id, attachment.name, data, self.storage)
        except MaterializationError as exc:
            self._anomaly(ctx, part_path, "materialization", str(exc))
        message.add_attachment(attachment)

    def _to_utf8(self, ctx: "_WalkContext", node: MimeNode, part_path: str, data: bytes) -> str:
        charset = node.param("charset") or self.server_encoding
        result = transcode(data, charset, "UTF-8")
        if result.degraded:
            self._anomaly(ctx, part_path, "charset", f"no se pudo convertir desde {charset}")
        return result.data.decode("utf-8", errors="replace")

    def _anomaly(self, ctx: "_WalkContext", part_path: str, kind: str, detail: str) -> None:
        logger.warning("Mensaje %s parte %s: %s (%s)", ctx.message.id, part_path, kind, detail)
        ctx.message.anomalies.append(DecodeAnomaly(part_path=part_path, kind=kind, detail=detail))


class _WalkContext:
    __slots__ = ("uid", "message", "peek")

    def __init__(self, *, uid: int | str, message: Message, peek: bool) -> None:
        self.uid = uid
        self.message = message
        self.peek = peek
