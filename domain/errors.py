# domain/errors.py
from __future__ import annotations
from typing import Optional


class MailDecodeError(Exception):
    pass


class FetchError(MailDecodeError):
    """Fallo al pedir estructura o bytes al servidor. No se reintenta aquí."""

    def __init__(self, message_id: str, part_path: Optional[str], reason: str = "") -> None:
        self.message_id = str(message_id)
        self.part_path = part_path
        where = f"mensaje {self.message_id}"
        if part_path:
            where += f" parte {part_path}"
        super().__init__(f"Error obteniendo {where}: {reason}" if reason else f"Error obteniendo {where}")


class MaterializationError(MailDecodeError):
    pass


class ConfigurationError(MailDecodeError):
    pass
