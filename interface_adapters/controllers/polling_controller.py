# interface_adapters/controllers/polling_controller.py
from __future__ import annotations
import logging
from typing import Callable, Optional

from application.use_cases.decode_message_usecase import DecodeMessageUseCase
from config.settings import Settings
from domain.errors import ConfigurationError
from domain.models import Message
from infrastructure.email.imap_client import IMAPInbox
from infrastructure.filesystem.storage import AttachmentStorage

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Message], None]


def log_message_summary(mail: Message) -> None:
    logger.info(
        "UID=%s de=%s asunto=%r texto=%d html=%d adjuntos=%s",
        mail.id, mail.from_address or "-", mail.subject,
        len(mail.text_plain), len(mail.text_html),
        [a.name for a in mail.get_attachments()] or "-",
    )
    for anomaly in mail.anomalies:
        logger.info("  anomalía parte %s: %s (%s)", anomaly.part_path, anomaly.kind, anomaly.detail)


class PollingController:
    def __init__(
        self,
        settings: Settings,
        *,
        on_message: Optional[MessageHandler] = None,
        inbox_factory: Callable[..., IMAPInbox] = IMAPInbox,
    ) -> None:
        self.settings = settings
        self.on_message = on_message or log_message_summary
        self.inbox_factory = inbox_factory

        # Un directorio mal configurado es fatal: mejor fallar aquí que en cada adjunto
        attachments_dir = settings.attachments_dir_path()
        self.storage = AttachmentStorage(attachments_dir) if attachments_dir else None

    def _open_inbox(self) -> IMAPInbox:
        st = self.settings
        return self.inbox_factory(st.IMAP_HOST, st.IMAP_PORT, st.IMAP_USERNAME, st.IMAP_PASSWORD, st.IMAP_SSL)

    def _process(self, inbox: IMAPInbox, uc: DecodeMessageUseCase, uid: int) -> Message:
        st = self.settings
        structure = inbox.fetch_structure(uid)
        headers = inbox.fetch_header_fields(uid)
        mail = uc.decode_message(uid, structure, headers, mark_as_seen=st.MARK_AS_SEEN)
        if st.ATTACHMENTS_BASE_URI and mail.text_html:
            mail.text_html = mail.resolve_inline_html(st.ATTACHMENTS_BASE_URI)
        return mail

    def _move(self, inbox: IMAPInbox, uid: int, dest: str) -> None:
        if not dest:
            return
        try:
            inbox.move_to(uid, dest)
            logger.info("Movido UID=%s -> %s", uid, dest)
        except Exception:
            logger.exception("No se pudo mover UID=%s", uid)

    def run_once(self, inbox: IMAPInbox | None = None) -> list[Message]:
        if inbox is None:
            with self._open_inbox() as opened:
                return self.run_once(opened)

        st = self.settings
        # Sin MARK_AS_SEEN abrimos en solo lectura: nada cambia en el servidor salvo los movimientos
        inbox.select_folder(st.IMAP_FOLDER_INBOX, readonly=not (st.MARK_AS_SEEN or st.IMAP_FOLDER_PROCESSED or st.IMAP_FOLDER_ERROR))
        uids = inbox.search(st.search_criteria(), limit=st.MAX_MAILS_PER_LOOP)
        if not uids:
            logger.info("Sin correos nuevos (IMAP).")
            return []

        logger.info("Procesando %d correos (IMAP)…", len(uids))
        uc = DecodeMessageUseCase(connection=inbox, storage=self.storage, server_encoding=st.SERVER_ENCODING)
        done: list[Message] = []
        for uid in uids:
            try:
                mail = self._process(inbox, uc, uid)
            except ConfigurationError:
                raise
            except Exception:
                logger.exception("Error procesando UID=%s", uid)
                self._move(inbox, uid, st.IMAP_FOLDER_ERROR)
                continue
            self.on_message(mail)
            done.append(mail)
            self._move(inbox, uid, st.IMAP_FOLDER_PROCESSED)
        return done

    def wait_for_new(self) -> bool:
        """IDLE sobre la bandeja; False si expira o no está activado."""
        st = self.settings
        if not st.IMAP_IDLE:
            return False
        with self._open_inbox() as inbox:
            inbox.select_folder(st.IMAP_FOLDER_INBOX, readonly=True)
            return inbox.idle_wait_new(timeout_seconds=st.IDLE_TIMEOUT)
