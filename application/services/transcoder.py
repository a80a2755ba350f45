# application/services/transcoder.py
# Conversión de juegos de caracteres y decodificación de Content-Transfer-Encoding
from __future__ import annotations
import base64
import codecs
import logging
import quopri
import re
from dataclasses import dataclass

import charset_normalizer

from domain.models import TransferEncoding

logger = logging.getLogger(__name__)

_BASE64_NOISE = re.compile(rb"[^a-zA-Z0-9+=/]+")


@dataclass(frozen=True)
class TranscodeResult:
    data: bytes
    converted: bool
    method: str  # identity | codec | charset_normalizer | passthrough

    @property
    def degraded(self) -> bool:
        return not self.converted


def _codec_name(charset: str) -> str | None:
    try:
        return codecs.lookup(charset).name
    except LookupError:
        return None


def same_charset(a: str, b: str) -> bool:
    a = (a or "").strip().lower()
    b = (b or "").strip().lower()
    if a == b:
        return True
    name_a = _codec_name(a) if a else None
    return name_a is not None and name_a == (_codec_name(b) if b else None)


def transcode(data: bytes, from_charset: str, to_charset: str) -> TranscodeResult:
    """
    Convierte `data` de `from_charset` a `to_charset` en modo "best effort".

    1) codecs de Python ignorando los caracteres que no se pueden mapear.
    2) charset_normalizer si el codec no existe o no produjo nada.
    3) Si todo falla, devuelve los bytes originales (converted=False). Nunca lanza.
    """
    if not data or same_charset(from_charset, to_charset):
        return TranscodeResult(data, True, "identity")

    try:
        out = data.decode(from_charset.strip(), errors="ignore").encode(to_charset.strip(), errors="ignore")
        if out:
            return TranscodeResult(out, True, "codec")
    except (LookupError, ValueError):
        logger.debug("Codec no disponible %s -> %s", from_charset, to_charset)

    try:
        best = charset_normalizer.from_bytes(data).best()
        if best is not None:
            out = str(best).encode(to_charset.strip(), errors="ignore")
            if out:
                return TranscodeResult(out, True, "charset_normalizer")
    except (LookupError, ValueError):
        logger.debug("charset_normalizer no pudo convertir a %s", to_charset)

    return TranscodeResult(data, False, "passthrough")


def _decode_base64(data: bytes) -> bytes:
    cleaned = _BASE64_NOISE.sub(b"", data).replace(b"=", b"")
    # un resto de 1 carácter no codifica ningún byte
    if len(cleaned) % 4 == 1:
        cleaned = cleaned[:-1]
    cleaned += b"=" * (-len(cleaned) % 4)
    return base64.b64decode(cleaned)


def decode_transfer_encoding(data: bytes, encoding: TransferEncoding | str | None) -> bytes:
    if not isinstance(encoding, TransferEncoding):
        encoding = TransferEncoding.parse(encoding)
    if encoding is TransferEncoding.BASE64:
        return _decode_base64(data)
    if encoding is TransferEncoding.QUOTED_PRINTABLE:
        return quopri.decodestring(data)
    return data
