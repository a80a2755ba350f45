# infrastructure/email/imap_client.py
from __future__ import annotations
import logging
from imapclient import IMAPClient

from domain.models import HeaderFields, MimeNode
from infrastructure.email.bodystructure import to_mime_node
from infrastructure.email.header_parser import parse_header_fields

logger = logging.getLogger(__name__)


class IMAPInbox:
    """
    Conexión al buzón. Trabaja con UIDs (IMAPClient usa UID por defecto).
    Una sola orden en vuelo: no compartir entre hilos.
    """

    def __init__(self, host: str, port: int, user: str, password: str, ssl: bool = True, client_factory=IMAPClient) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.ssl = ssl
        self.client_factory = client_factory
        self.client: IMAPClient | None = None

    def __enter__(self) -> "IMAPInbox":
        self.client = self.client_factory(self.host, port=self.port, ssl=self.ssl)
        self.client.login(self.user, self.password)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self.client:
                self.client.logout()
        except Exception:
            logger.exception("Error cerrando IMAP")

    def select_folder(self, folder: str, readonly: bool = False) -> None:
        assert self.client
        self.client.select_folder(folder, readonly=readonly)

    def search(self, criteria: list[str] | str = "ALL", limit: int | None = None) -> list[int]:
        assert self.client
        uids = sorted(self.client.search(criteria))  # procesar en orden
        if limit:
            uids = uids[:limit]
        return uids

    def search_unseen(self, limit: int | None = None) -> list[int]:
        return self.search(["UNSEEN"], limit=limit)

    # ───────── fetch ─────────
    def _fetch_one(self, uid: int, item: str, key: str) -> object:
        assert self.client
        resp = self.client.fetch([uid], [item]).get(uid)
        if not resp or key.encode() not in resp:
            raise RuntimeError(f"Respuesta FETCH sin {key} para UID={uid}")
        return resp[key.encode()]

    def fetch_structure(self, uid: int) -> MimeNode:
        return to_mime_node(self._fetch_one(uid, "BODYSTRUCTURE", "BODYSTRUCTURE"))

    def fetch_raw_header(self, uid: int) -> bytes:
        return bytes(self._fetch_one(uid, "BODY.PEEK[HEADER]", "BODY[HEADER]") or b"")

    def fetch_header_fields(self, uid: int) -> HeaderFields:
        return parse_header_fields(self.fetch_raw_header(uid))

    def fetch_part_body(self, uid: int, part_path: str, peek: bool = True) -> bytes:
        # Sin PEEK el servidor marca el correo como leído
        item = f"BODY.PEEK[{part_path}]" if peek else f"BODY[{part_path}]"
        return bytes(self._fetch_one(uid, item, f"BODY[{part_path}]") or b"")

    # ───────── órdenes ─────────
    def mark_seen(self, uid: int) -> None:
        assert self.client
        self.client.add_flags([uid], [b"\\Seen"])

    def mark_unseen(self, uid: int) -> None:
        assert self.client
        self.client.remove_flags([uid], [b"\\Seen"])

    def move_to(self, uid: int, dest_folder: str) -> None:
        assert self.client
        self.client.move([uid], dest_folder)

    def delete(self, uid: int, expunge: bool = True) -> None:
        assert self.client
        self.client.delete_messages([uid])
        if expunge:
            self.client.expunge()

    def idle_wait_new(self, timeout_seconds: int = 1500) -> bool:
        """
        Entra en modo IDLE y espera notificación de nuevos correos hasta 'timeout_seconds'.
        Devuelve True si se recibió notificación, False si expiró.
        """
        assert self.client
        try:
            self.client.idle()
            logger.info("Entrando en IDLE (%s s)…", timeout_seconds)
            responses = self.client.idle_check(timeout=timeout_seconds)
            self.client.idle_done()
            if responses:
                logger.info("Notificación IMAP: %s", responses[:3])
                return True
            return False
        except Exception:
            logger.exception("Fallo en IDLE; saliendo de IDLE")
            try:
                self.client.idle_done()
            except Exception:
                logger.debug("idle_done falló tras error en IDLE")
            return False
