"""Run the implant ledger API with uvicorn.

    python -m implant_ledger
    implant-ledger

Bind address comes from IMPLANT_LEDGER_HOST / IMPLANT_LEDGER_PORT.
"""

from __future__ import annotations

import uvicorn

from config.settings import get_server_settings
from observability.logging_config import get_logger

logger = get_logger("server")

APP_IMPORT_PATH = "implant_ledger.api.fastapi_app:app"


def main() -> None:
    settings = get_server_settings()
    logger.info("Starting implant ledger API", extra={"host": settings.host, "port": settings.port})
    uvicorn.run(APP_IMPORT_PATH, host=settings.host, port=settings.port, reload=settings.reload)


if __name__ == "__main__":
    main()
