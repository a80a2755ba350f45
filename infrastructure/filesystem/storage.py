# infrastructure/filesystem/storage.py
from __future__ import annotations
import os
import re
from datetime import datetime
from email.utils import parsedate_to_datetime
from pathlib import Path

from domain.errors import ConfigurationError, MaterializationError

MAX_NAME_LENGTH = 250
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_SEPARATORS = re.compile(r"[\\/]")
_WHITESPACE = re.compile(r"\s+")
# alfanuméricos ASCII, cirílico básico (а-я, і, ї, є), guion bajo y punto
_NOT_ALLOWED = re.compile(r"[^0-9a-zа-яіїє_.]", re.IGNORECASE)
_UNDERSCORES = re.compile(r"_+")


def sanitize_filename(name: str) -> str:
    name = _SEPARATORS.sub("", name or "")
    name = _WHITESPACE.sub("_", name)
    name = _NOT_ALLOWED.sub("", name)
    name = _UNDERSCORES.sub("_", name)
    return name.strip("_")


def _truncate(name: str, limit: int = MAX_NAME_LENGTH) -> str:
    name = name[:limit]
    # el límite real del sistema de ficheros va en bytes
    while len(name.encode("utf-8")) > limit:
        name = name[:-1]
    return name


def _parse_message_date(value: str) -> datetime:
    value = (value or "").strip()
    try:
        return datetime.strptime(value, DATE_FORMAT)
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError) as exc:
        raise MaterializationError(f"Fecha de mensaje no válida: {value!r}") from exc


def _check_base(base: Path) -> None:
    if not base.is_dir():
        raise ConfigurationError(f"El directorio de adjuntos '{base}' no existe o no es un directorio")
    if not os.access(base, os.W_OK | os.X_OK):
        raise ConfigurationError(f"El directorio de adjuntos '{base}' no tiene permisos de escritura")


class AttachmentStorage:
    """
    Guarda adjuntos en <base>/<YYYY>/<MM>/<msg>_<adjunto>_<nombre>.
    El año/mes sale de la fecha del mensaje, no de la hora actual.
    """

    def __init__(self, base: Path) -> None:
        base = Path(base)
        _check_base(base)
        self.base = base.resolve()

    def build_basename(self, message_id: str, attachment_id: str, file_name: str) -> str:
        basename = _SEPARATORS.sub("", f"{message_id}_{attachment_id}_{sanitize_filename(file_name)}")
        return _truncate(basename)

    def target_dir(self, message_date: str) -> Path:
        dt = _parse_message_date(message_date)
        return self.base / f"{dt.year:04d}" / f"{dt.month:02d}"

    def save(
        self,
        *,
        message_id: str,
        attachment_id: str,
        file_name: str,
        message_date: str,
        data: bytes,
    ) -> Path:
        # puede haber desaparecido o perdido permisos desde el arranque
        _check_base(self.base)
        folder = self.target_dir(message_date)
        fp = folder / self.build_basename(message_id, attachment_id, file_name)
        try:
            folder.mkdir(parents=True, exist_ok=True)
            fp.write_bytes(data)
        except OSError as exc:
            raise MaterializationError(f"No se pudo escribir {fp}: {exc}") from exc
        return fp
