#=================================================================
# notifier/server.py
# Process entry-point: fail-fast config check, banner, uvicorn.
#=================================================================

import logging
import sys

import uvicorn

from notifier.config import settings

logger = logging.getLogger("uvicorn.error")


def _banner() -> None:
    port = settings.PORT
    logger.info("=" * 60)
    logger.info("%s backend", settings.SERVICE_NAME)
    logger.info("=" * 60)
    logger.info("Server running on port %s", port)
    logger.info("Health check: http://localhost:%s/health", port)
    logger.info("Manual trigger: POST http://localhost:%s/process-queue", port)
    logger.info("Queue polling every %ss (batch=%d)", settings.POLL_INTERVAL_SECONDS, settings.BATCH_SIZE)
    logger.info("=" * 60)


def main() -> None:
    from notifier.main_app import app

    missing = settings.missing_required()
    if missing:
        for name in missing:
            logger.error("ERROR: %s is missing!", name)
        logger.error("Fix: add the missing values to your .env file")
        sys.exit(1)

    logger.info("Environment loaded:")
    logger.info("   backend: %s", settings.QUEUE_BACKEND)
    if settings.QUEUE_BACKEND == "supabase":
        logger.info("   SUPABASE_SERVICE_ROLE_KEY: OK")
        logger.info("   SUPABASE_URL: %s", settings.SUPABASE_URL)
    _banner()

    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
