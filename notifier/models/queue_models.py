import logging
from datetime import datetime
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger("uvicorn.error")

STATUS_PENDING = "pending"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"


class QueueJob(BaseModel):
    """
    One row of the notification queue as seen by the worker.

    Optional columns get their defaults here, at the read boundary:
      - attempts: null/absent -> 0
      - data:     null/absent -> {} (values coerced to str for FCM)
    """
    id: Union[int, str]
    status: str = Field(STATUS_PENDING, description="pending | sent | failed")
    created_at: Optional[datetime] = Field(None, description="FIFO ordering key")
    recipient_token: str = Field("", alias="fcm_token", description="FCM registration token")
    title: str = ""
    body: str = ""
    data: Dict[str, str] = Field(default_factory=dict)
    type: Optional[str] = Field(None, description="Category tag, e.g. 'chat'")
    attempts: int = 0
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    # set when the stored row could not be parsed; the worker fails it without sending
    invalid_reason: Optional[str] = Field(None, exclude=True)

    class Config:
        extra = "ignore"
        populate_by_name = True

    @field_validator("attempts", mode="before")
    @classmethod
    def _attempts_default(cls, v: Any) -> int:
        return 0 if v is None else v

    @field_validator("title", "body", mode="before")
    @classmethod
    def _text_default(cls, v: Any) -> str:
        return "" if v is None else v

    @field_validator("recipient_token", mode="before")
    @classmethod
    def _token_default(cls, v: Any) -> str:
        return "" if v is None else v

    @field_validator("data", mode="before")
    @classmethod
    def _data_default(cls, v: Any) -> Dict[str, str]:
        if not v or not isinstance(v, dict):
            return {}
        return {str(k): "" if val is None else str(val) for k, val in v.items()}


def _describe(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "row"
        parts.append(f"{loc}: {err.get('msg')}")
    return "invalid queue row: " + "; ".join(parts)


def _safe_attempts(v: Any) -> int:
    try:
        return max(int(v or 0), 0)
    except (TypeError, ValueError):
        return 0


def parse_row(row: Dict[str, Any]) -> Optional[QueueJob]:
    """
    Parse one stored row. A row that fails validation but still has a usable
    id comes back flagged with `invalid_reason`; without an id it is dropped (None).
    """
    try:
        return QueueJob.model_validate(row)
    except ValidationError as e:
        reason = _describe(e)
    job_id = row.get("id") if isinstance(row, dict) else None
    if isinstance(job_id, bool) or not isinstance(job_id, (int, str)) or job_id == "":
        logger.error("[STORE] dropping unparseable row without id: %s", reason)
        return None
    logger.warning("[STORE] row id=%s is malformed: %s", job_id, reason)
    return QueueJob(
        id=job_id,
        attempts=_safe_attempts(row.get("attempts")),
        invalid_reason=reason,
    )
