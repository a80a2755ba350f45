# application/services/rfc822_parser.py
# Reconstruye el árbol MIME de un message/rfc822 a partir de sus bytes crudos
from __future__ import annotations
import email.message
import re

import pyzmail

from application.services.header_decoder import reassemble_parameters
from domain.models import MimeNode, TransferEncoding

_PARAM = re.compile(r"""\s*([^\s=;]+)\s*=\s*("(?:[^"\\]|\\.)*"|[^;]*)""")


def split_header_params(value: str | None) -> tuple[str, list[tuple[str, str]]]:
    """'attachment; filename="a b.pdf"' -> ("attachment", [("filename", "a b.pdf")])"""
    if not value:
        return "", []
    value = str(value)
    head, _, rest = value.partition(";")
    pairs: list[tuple[str, str]] = []
    for m in _PARAM.finditer(rest):
        key, raw = m.group(1), m.group(2).strip()
        if len(raw) >= 2 and raw[0] == raw[-1] == '"':
            raw = re.sub(r"\\(.)", r"\1", raw[1:-1])
        pairs.append((key, raw))
    return head.strip().lower(), pairs


def _raw_payload(part: email.message.Message) -> bytes:
    payload = part.get_payload()
    if isinstance(payload, bytes):
        return payload
    if not isinstance(payload, str):
        return b""
    # message_from_bytes guarda los bytes no ASCII como surrogateescape
    return payload.encode("utf-8", errors="surrogateescape")


def node_from_email(part: email.message.Message) -> MimeNode:
    ctype, type_params = split_header_params(part.get("Content-Type"))
    if "/" in ctype:
        main, sub = (s.strip() for s in ctype.split("/", 1))
    else:
        main, sub = part.get_content_maintype(), part.get_content_subtype()
    disposition, disp_params = split_header_params(part.get("Content-Disposition"))
    params = reassemble_parameters(type_params)
    params.update(reassemble_parameters(disp_params))

    encoding = TransferEncoding.parse(part.get("Content-Transfer-Encoding"))
    children: tuple[MimeNode, ...] = ()
    content = None
    if (main.lower(), sub.lower()) == ("message", "rfc822"):
        # se guarda crudo; el recorrido lo vuelve a trocear como cualquier rfc822
        inner = part.get_payload(0) if part.is_multipart() else None
        if inner is not None:
            content = inner.as_bytes()
            # ya viene serializado por el parser, sin codificación de transporte
            encoding = TransferEncoding.EIGHT_BIT
        else:
            content = _raw_payload(part)
    elif part.is_multipart():
        children = tuple(node_from_email(sub_part) for sub_part in part.get_payload())
    else:
        content = _raw_payload(part)

    content_id = part.get("Content-ID") or part.get("X-Attachment-Id")
    return MimeNode(
        type=main.lower(),
        subtype=sub.lower(),
        encoding=encoding,
        parameters=params,
        disposition=disposition or None,
        disposition_id=str(content_id) if content_id else None,
        children=children,
        content=content,
    )


def parse_embedded_message(raw: bytes) -> MimeNode:
    """Raíz del mensaje incrustado, con el contenido de cada hoja ya cargado."""
    msg = pyzmail.PyzMessage.factory(raw)
    return node_from_email(msg)
