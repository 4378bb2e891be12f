#=================================================================
# notifier/main_app.py
# FastAPI application entry-point: HTTP surface + polling worker.
#=================================================================

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from notifier import logging_filters
from notifier.config import settings, Settings
from notifier.routes import router as notifications_router
from notifier.workers.queue_processor import QueueProcessor, worker_loop

# --- Logging setup (console, level from settings) ---
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s | %(message)s"
)
logger = logging.getLogger("uvicorn.error")
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging_filters.install()


async def build_processor(cfg: Settings) -> QueueProcessor:
    """
    Construct the long-lived clients once and inject them into the processor.
    """
    from notifier.delivery.fcm import FcmSender, init_firebase

    cfg.validate()
    # sender first: nothing to release if the service account is unusable
    sender = FcmSender(app=init_firebase(cfg.FIREBASE_CREDENTIALS))

    if cfg.QUEUE_BACKEND == "sql":
        from notifier import db
        from notifier.store.sql_store import SqlQueueStore

        engine = db.create_engine(cfg.DATABASE_URL)
        try:
            await db.init_db(engine)
        except Exception:
            await engine.dispose()
            raise
        store = SqlQueueStore(engine)
    else:
        from notifier.store.supabase_store import SupabaseQueueStore

        store = SupabaseQueueStore(
            base_url=cfg.SUPABASE_URL,
            service_key=cfg.SUPABASE_SERVICE_ROLE_KEY,
            table=cfg.QUEUE_TABLE,
            timeout=cfg.HTTP_TIMEOUT_SECONDS,
        )
        logger.info("[STORE] Supabase client initialized (url=%s table=%s)", cfg.SUPABASE_URL, cfg.QUEUE_TABLE)

    return QueueProcessor(
        store,
        sender,
        batch_size=cfg.BATCH_SIZE,
        chat_channel=cfg.CHAT_CHANNEL_ID,
        default_channel=cfg.DEFAULT_CHANNEL_ID,
    )


def create_app(
    processor: Optional[QueueProcessor] = None,
    start_worker: bool = True,
    poll_interval: Optional[float] = None,
) -> FastAPI:
    """
    Build the FastAPI app. With no processor given, clients are built from
    settings at startup and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_processor = processor is None
        app.state.processor = processor or await build_processor(settings)

        # ---- Background worker lifecycle ----
        worker_task: asyncio.Task | None = None
        worker_stop = asyncio.Event()
        if start_worker:
            worker_task = asyncio.create_task(
                worker_loop(app.state.processor, worker_stop, poll_interval)
            )
        try:
            yield
        finally:
            logger.info("Shutting down gracefully...")
            worker_stop.set()
            if worker_task:
                try:
                    # wait_for cancels the task itself when the timeout expires
                    await asyncio.wait_for(worker_task, timeout=5.0)
                except asyncio.TimeoutError:
                    logger.warning("[WORKER] did not stop within 5s; cancelled")
            if owns_processor:
                await app.state.processor.store.aclose()

    app = FastAPI(
        title="Travel Buddy FCM Notifications",
        description="Polls the push notification queue and delivers jobs through FCM.",
        lifespan=lifespan,
    )
    if processor is not None:
        app.state.processor = processor

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(notifications_router)   # /health, /process-queue

    # --- Global error handler (keeps full stack trace in logs) ---
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled error", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": str(exc)},
        )

    return app


app = create_app()
