import uvicorn

from grc_api.core.logging import configure_logging, get_logger
from grc_api.core.settings import get_settings

logger = get_logger("api.runner")


def main() -> None:
    configure_logging()
    settings = get_settings()
    logger.info(
        "api.starting",
        extra={"component": "runner", "host": settings.API_HOST, "port": settings.API_PORT, "env": settings.GRC_ENV},
    )
    uvicorn.run(
        "grc_api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=settings.GRC_ENV == "development",
    )


if __name__ == "__main__":
    main()
