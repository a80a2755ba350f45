# domain/ports.py
from __future__ import annotations
from typing import Protocol

from domain.models import MimeNode


class MailConnection(Protocol):
    """Lo mínimo que el decodificador necesita de la conexión al buzón."""

    def fetch_structure(self, uid: int) -> MimeNode: ...

    def fetch_part_body(self, uid: int, part_path: str, peek: bool = True) -> bytes: ...

    def fetch_raw_header(self, uid: int) -> bytes: ...
