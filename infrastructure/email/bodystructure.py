# infrastructure/email/bodystructure.py
# BODYSTRUCTURE (tal como lo devuelve IMAPClient) -> árbol MimeNode
from __future__ import annotations
from typing import Any, Sequence

from application.services.header_decoder import reassemble_parameters
from domain.models import MimeNode, TransferEncoding


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return value.decode("latin-1")
    return str(value)


def _pairs(params: Any) -> list[tuple[str, str]]:
    # (b"charset", b"utf-8", b"name", b"a.txt") -> [("charset", "utf-8"), ("name", "a.txt")]
    if not isinstance(params, (tuple, list)):
        return []
    items = list(params)
    return [(_text(items[i]), _text(items[i + 1])) for i in range(0, len(items) - 1, 2)]


def _disposition(value: Any) -> tuple[str | None, list[tuple[str, str]]]:
    if not isinstance(value, (tuple, list)) or not value:
        return None, []
    kind = _text(value[0]).lower() or None
    params = _pairs(value[1]) if len(value) > 1 else []
    return kind, params


def _is_multipart(body: Sequence[Any]) -> bool:
    return bool(body) and isinstance(body[0], (list, tuple))


def _split_multipart(body: Sequence[Any]) -> tuple[list[Any], list[Any]]:
    # BodyData agrupa las partes en una lista; una tupla anidada cruda no
    if isinstance(body[0], list):
        return list(body[0]), list(body[1:])
    parts: list[Any] = []
    i = 0
    while i < len(body) and isinstance(body[i], (list, tuple)):
        parts.append(body[i])
        i += 1
    return parts, list(body[i:])


def to_mime_node(body: Sequence[Any]) -> MimeNode:
    if _is_multipart(body):
        parts, ext = _split_multipart(body)
        subtype = _text(ext[0]).lower() if ext else "mixed"
        params = reassemble_parameters(_pairs(ext[1])) if len(ext) > 1 else {}
        disposition, disp_params = _disposition(ext[2]) if len(ext) > 2 else (None, [])
        params.update(reassemble_parameters(disp_params))
        return MimeNode(
            type="multipart",
            subtype=subtype,
            parameters=params,
            disposition=disposition,
            children=tuple(to_mime_node(p) for p in parts),
        )

    main = _text(body[0]).lower() or "text"
    sub = _text(body[1]).lower() if len(body) > 1 else "plain"
    params = reassemble_parameters(_pairs(body[2])) if len(body) > 2 else {}
    body_id = _text(body[3]) if len(body) > 3 else ""
    encoding = TransferEncoding.parse(body[5] if len(body) > 5 else None)

    if main == "text":
        ext_at = 8
    elif main == "message" and sub == "rfc822":
        # envelope y cuerpo interno (7 y 8) se ignoran: BODY[n] trae el mensaje
        # completo con sus cabeceras y se trocea a partir de esos bytes
        ext_at = 10
    else:
        ext_at = 7

    disposition, disp_params = _disposition(body[ext_at + 1]) if len(body) > ext_at + 1 else (None, [])
    params.update(reassemble_parameters(disp_params))

    return MimeNode(
        type=main,
        subtype=sub,
        encoding=encoding,
        parameters=params,
        disposition=disposition,
        disposition_id=body_id or None,
    )
