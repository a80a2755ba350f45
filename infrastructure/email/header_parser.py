# infrastructure/email/header_parser.py
from __future__ import annotations
import re
from datetime import datetime
from email.utils import parsedate_to_datetime

import pyzmail

from domain.models import Address, HeaderFields

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_COMMENT = re.compile(r"\(.*?\)")


def normalize_date(value: str | None) -> str:
    """Fecha de cabecera -> 'YYYY-MM-DD HH:MM:SS'. Sin fecha válida se usa la actual."""
    raw = _COMMENT.sub("", value or "").strip()
    try:
        dt = parsedate_to_datetime(raw)
    except (TypeError, ValueError, IndexError):
        dt = datetime.now()
    return dt.strftime(DATE_FORMAT)


def _addresses(msg, name: str) -> list[Address]:
    # pyzmail devuelve (nombre, dirección) y repite la dirección cuando no hay nombre
    return [
        Address(address=addr, name=display if display and display != addr else None)
        for display, addr in msg.get_addresses(name)
        if addr
    ]


def _header(msg, name: str) -> str | None:
    value = msg.get_decoded_header(name)
    return value.strip() if value else None


def parse_header_fields(raw: bytes) -> HeaderFields:
    msg = pyzmail.PyzMessage.factory(raw)
    sender = _addresses(msg, "from")
    return HeaderFields(
        date=normalize_date(msg.get_decoded_header("date")),
        subject=msg.get_subject() or "",
        message_id=_header(msg, "message-id"),
        in_reply_to=_header(msg, "in-reply-to"),
        references=_header(msg, "references"),
        from_name=sender[0].name if sender else None,
        from_address=sender[0].address if sender else None,
        to=_addresses(msg, "to"),
        cc=_addresses(msg, "cc"),
        reply_to=_addresses(msg, "reply-to"),
        to_string=_header(msg, "to") or "",
    )
