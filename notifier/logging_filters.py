# --- Global log sanitizer: keep credentials and device tokens out of logs -------
import logging, re

_BEARER_RE = re.compile(r'(?i)(bearer\s+)[A-Za-z0-9._\-]+')
_APIKEY_RE = re.compile(r"(?i)(['\"]?apikey['\"]?\s*[:=]\s*['\"]?)[A-Za-z0-9._\-]+")
# FCM registration tokens: "<instance-id>:<long base64url tail>"
_FCM_TOKEN_RE = re.compile(r'\b([A-Za-z0-9_\-]{8})[A-Za-z0-9_\-]*:[A-Za-z0-9_\-]{60,}')


def redact(s: str) -> str:
    s = _BEARER_RE.sub(r'\1<redacted>', s)
    s = _APIKEY_RE.sub(r'\1<redacted>', s)
    s = _FCM_TOKEN_RE.sub(r'\1...<token>', s)
    return s


class _RedactFilter(logging.Filter):
    """Mask bearer keys, apikey headers and FCM tokens in the formatted message."""
    def filter(self, record: logging.LogRecord) -> bool:
        try:
            msg = record.getMessage()
        except (TypeError, ValueError):
            return True
        if isinstance(msg, str):
            cleaned = redact(msg)
            if cleaned != msg:
                record.msg = cleaned
                record.args = ()
        return True


def install() -> None:
    """Attach the filter to the root and uvicorn loggers (idempotent)."""
    for _name in ("", "uvicorn", "uvicorn.error"):
        lg = logging.getLogger(_name)
        if not any(isinstance(f, _RedactFilter) for f in lg.filters):
            lg.addFilter(_RedactFilter())
