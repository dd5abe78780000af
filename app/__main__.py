"""
PixelPilot server: ``python -m app`` or the ``pixelpilot`` console script
"""

import uvicorn

from app.core.config import settings
from app.core.log import logger, uvicorn_log_config


def main() -> None:
    logger.info(
        f"Serving {settings.PROJECT_NAME} v{settings.PROJECT_VERSION} on {settings.APP_HOST}:{settings.APP_PORT}"
    )
    uvicorn.run(
        "app.main:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        workers=settings.APP_WORKERS,
        log_config=uvicorn_log_config,
        reload=False,
        forwarded_allow_ips="*",
    )


if __name__ == "__main__":
    main()
