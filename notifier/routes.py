#=======================================================================================
# notifier/routes.py
# Health check and manual queue trigger.
#=======================================================================================

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from notifier.config import settings
from notifier.workers.queue_processor import QueueProcessor

logger = logging.getLogger("uvicorn.error")

router = APIRouter(tags=["Notifications"])


def get_processor(request: Request) -> QueueProcessor:
    processor = getattr(request.app.state, "processor", None)
    if processor is None:
        raise HTTPException(status_code=503, detail="queue processor not initialized")
    return processor


@router.get("/health")
async def health():
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.SERVICE_NAME,
    }


@router.post("/process-queue")
async def process_queue(processor: QueueProcessor = Depends(get_processor)):
    try:
        report = await processor.run_cycle()
    except Exception as e:
        logger.error("[API] manual queue run failed: %s", e)
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    out = {
        "success": True,
        "message": "Cycle already in progress" if report.skipped else "Queue processed",
        "skipped": report.skipped,
        "sent": report.sent,
        "failed": report.failed,
    }
    if report.fetch_error:
        # fetch problems are transient; the next scheduled cycle retries
        out["fetch_error"] = report.fetch_error
    return out
