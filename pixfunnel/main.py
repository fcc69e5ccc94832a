"""Entrypoint: configura logging, banco e inicia a API de checkout PIX."""

import logging
import os

import uvicorn
from dotenv import load_dotenv

from pixfunnel.api import create_app
from pixfunnel.db.session import create_all_tables

load_dotenv()

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

# Não emite logs de requisição HTTP do httpx (a conciliação consulta o gateway a cada poucos segundos)
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def main() -> None:
    if not (os.getenv("PUSHINPAY_API_TOKEN") or "").strip():
        logger.warning("PUSHINPAY_API_TOKEN não definido: criação e consulta de cobranças vão falhar")
    if (os.getenv("SALES_STORE") or "sql").strip().lower() == "sql":
        create_all_tables()

    port = int(os.getenv("API_PORT", "8080"))
    logger.info("API de checkout PIX iniciada (porta %s)", port)
    uvicorn.run(create_app(), host="0.0.0.0", port=port, log_level="warning")


if __name__ == "__main__":
    main()
