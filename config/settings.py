# config/settings.py
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
import os
from dotenv import load_dotenv

load_dotenv()

@dataclass(frozen=True)
class Settings:
    # IMAP
    IMAP_HOST: str = os.getenv("IMAP_HOST", "imap.gmail.com")
    IMAP_PORT: int = int(os.getenv("IMAP_PORT", 993))
    IMAP_USERNAME: str = os.getenv("IMAP_USERNAME", "")
    IMAP_PASSWORD: str = os.getenv("IMAP_PASSWORD", "")
    IMAP_SSL: bool = os.getenv("IMAP_SSL", "true").lower() == "true"
    IMAP_FOLDER_INBOX: str = os.getenv("IMAP_FOLDER_INBOX", "INBOX")
    IMAP_FOLDER_PROCESSED: str = os.getenv("IMAP_FOLDER_PROCESSED", "")  # vacío = no mover
    IMAP_FOLDER_ERROR: str = os.getenv("IMAP_FOLDER_ERROR", "")
    IMAP_SEARCH: str = os.getenv("IMAP_SEARCH", "UNSEEN")
    IMAP_IDLE: bool = os.getenv("IMAP_IDLE", "false").lower() == "true"
    IDLE_TIMEOUT: int = int(os.getenv("IDLE_TIMEOUT", 1500))

    # Decodificación / adjuntos
    ATTACHMENTS_DIR: str = os.getenv("ATTACHMENTS_DIR", "")  # vacío = no se escribe nada en disco
    ATTACHMENTS_BASE_URI: str = os.getenv("ATTACHMENTS_BASE_URI", "")
    SERVER_ENCODING: str = os.getenv("SERVER_ENCODING", "UTF-8")
    MARK_AS_SEEN: bool = os.getenv("MARK_AS_SEEN", "false").lower() == "true"

    # Polling
    POLL_INTERVAL: int = int(os.getenv("POLL_INTERVAL", 30))
    MAX_MAILS_PER_LOOP: int = int(os.getenv("MAX_MAILS_PER_LOOP", 20))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # ───────── helpers ─────────
    def attachments_dir_path(self) -> Path | None:
        raw = (self.ATTACHMENTS_DIR or "").strip()
        return Path(raw).expanduser() if raw else None

    def search_criteria(self) -> list[str]:
        # separa respetando comillas: FROM "Juan Pérez" UNSEEN
        import shlex
        raw = (self.IMAP_SEARCH or "").strip()
        return shlex.split(raw) if raw else ["ALL"]
