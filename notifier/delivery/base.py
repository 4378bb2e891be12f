"""Push delivery contracts shared by the processor and provider clients."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol


@dataclass
class PushRequest:
    token: str
    title: str
    body: str
    channel_id: str                 # Android notification channel (sound/category profile)
    data: Dict[str, str] = field(default_factory=dict)


@dataclass
class DeliveryResult:
    ok: bool
    message_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, message_id: Optional[str] = None) -> "DeliveryResult":
        return cls(ok=True, message_id=message_id)

    @classmethod
    def failure(cls, error: str) -> "DeliveryResult":
        return cls(ok=False, error=error or "unknown delivery error")


class PushSender(Protocol):
    async def send(self, request: PushRequest) -> DeliveryResult:
        ...
