# application/services/header_decoder.py
# Palabras codificadas RFC 2047 y parámetros extendidos RFC 2231
from __future__ import annotations
import logging
import re
from email.errors import HeaderParseError
from email.header import decode_header
from typing import Iterable, Mapping
from urllib.parse import unquote_to_bytes

from application.services.transcoder import transcode

logger = logging.getLogger(__name__)

_RFC2231 = re.compile(r"^(.*?)'.*?'(.*?)$")
_URL_INVALID = re.compile(r"[^%a-zA-Z0-9\-_.+]")
_URL_ESCAPE = re.compile(r"%[a-zA-Z0-9]{2}")
_CONTINUATION = re.compile(r"^(?P<name>[^*]+)\*(?:(?P<index>\d+)\*?)?$")


def _element_charset(charset: str | None) -> str:
    # "charset*lang" (RFC 2231 §5) y el comodín "default"
    charset = (charset or "").split("*", 1)[0].strip()
    if not charset or charset.lower() == "default":
        return "iso-8859-1"
    return charset


def _to_text(data: bytes, target_charset: str) -> str:
    try:
        return data.decode(target_charset, errors="replace")
    except LookupError:
        return data.decode("utf-8", errors="replace")


def decode_encoded_words(value: str | bytes | None, target_charset: str = "utf-8") -> str:
    if not value:
        return ""
    from_bytes = isinstance(value, bytes)
    # los bytes sin codificar se tratan como "default" (latin-1), que es biyectivo
    text = value.decode("latin-1") if from_bytes else value
    try:
        elements = decode_header(text)
    except HeaderParseError:
        logger.warning("Cabecera con palabra codificada ilegible: %r", text)
        return text

    out: list[str] = []
    for chunk, charset in elements:
        if isinstance(chunk, str):
            out.append(chunk)
            continue
        if charset is None and not from_bytes:
            # decode_header devuelve los tramos planos en raw-unicode-escape
            out.append(chunk.decode("raw-unicode-escape"))
            continue
        result = transcode(chunk, _element_charset(charset), target_charset)
        if result.degraded:
            logger.warning("No se pudo convertir palabra codificada desde %s", charset)
        out.append(_to_text(result.data, target_charset))
    return "".join(out)


def is_url_encoded(value: str) -> bool:
    return not _URL_INVALID.search(value) and bool(_URL_ESCAPE.search(value))


def decode_extended_parameter(value: str | None, target_charset: str = "utf-8") -> str:
    """
    RFC 2231: <charset>'<idioma>'<datos-con-%XX>. Si no encaja, se devuelve tal cual.
    """
    if not value:
        return value or ""
    m = _RFC2231.match(value)
    if not m:
        return value
    charset, data = m.group(1).strip(), m.group(2)
    if not is_url_encoded(data):
        return value
    raw = unquote_to_bytes(data.replace("+", " "))
    if not charset:
        return _to_text(raw, target_charset)
    result = transcode(raw, charset, target_charset)
    if result.degraded:
        logger.warning("Parámetro RFC 2231 con charset no convertible: %s", charset)
    return _to_text(result.data, target_charset)


def reassemble_split_parameter(parameter_name: str, parts: Mapping[str, str]) -> str:
    """
    Une name*0, name*1, ... en orden numérico. Las continuaciones mandan sobre
    name*, y name* sobre el name plano (RFC 2231 §4, RFC 6266 §4.3).
    """
    wanted = parameter_name.lower()
    indexed: list[tuple[int, str]] = []
    extended: str | None = None
    bare: str | None = None
    for key, value in parts.items():
        m = _CONTINUATION.match(key.strip())
        if key.strip().lower() == wanted:
            bare = value
        elif m and m.group("name").lower() == wanted:
            if m.group("index") is None:
                extended = value
            else:
                indexed.append((int(m.group("index")), value))
    if indexed:
        return "".join(v for _, v in sorted(indexed, key=lambda item: item[0]))
    if extended is not None:
        return extended
    return bare or ""


def reassemble_parameters(pairs: Iterable[tuple[str, str]]) -> dict[str, str]:
    """Normaliza una lista de parámetros (clave en minúsculas, continuaciones unidas)."""
    grouped: dict[str, dict[str, str]] = {}
    for key, value in pairs:
        key = (key or "").strip()
        if not key:
            continue
        m = _CONTINUATION.match(key)
        base = (m.group("name") if m else key).lower()
        grouped.setdefault(base, {})[key] = value or ""
    return {name: reassemble_split_parameter(name, parts) for name, parts in grouped.items()}
