# main.py
# Punto de entrada: loop de polling IMAP -> decodifica correos y guarda adjuntos
from __future__ import annotations
import logging
import time
from config.settings import Settings
from domain.errors import ConfigurationError
from interface_adapters.controllers.polling_controller import PollingController

logger = logging.getLogger(__name__)


def main() -> None:
    settings = Settings()
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    controller = PollingController(settings=settings)

    logger.info("=== IMAP MIME Ingestor ===")
    logger.info("IMAP host=%s inbox=%s adjuntos=%s", settings.IMAP_HOST, settings.IMAP_FOLDER_INBOX,
                settings.ATTACHMENTS_DIR or "(sin disco)")
    while True:
        try:
            controller.run_once()
        except ConfigurationError:
            logger.exception("Configuración inválida; se detiene el proceso")
            raise
        except Exception:
            logger.exception("Error en ciclo de polling")
        if settings.POLL_INTERVAL <= 0:
            break
        if not controller.wait_for_new():
            time.sleep(settings.POLL_INTERVAL)


if __name__ == "__main__":
    main()
