#===========================================================================
# notifier/delivery/fcm.py
# Firebase Cloud Messaging delivery client.
#===========================================================================

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import firebase_admin
from firebase_admin import credentials, messaging
from firebase_admin import exceptions as firebase_exceptions

from notifier.config import ConfigError, settings
from notifier.delivery.base import DeliveryResult, PushRequest

logger = logging.getLogger("uvicorn.error")

CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"


def init_firebase(credentials_path: str | None = None) -> firebase_admin.App:
    """
    Initialize (or reuse) the default Firebase app from a service-account JSON file.
    Raises ConfigError when the file is missing or unreadable.
    """
    path = credentials_path or settings.FIREBASE_CREDENTIALS
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass
    try:
        cred = credentials.Certificate(path)
    except (OSError, ValueError) as e:
        raise ConfigError(f"cannot load Firebase service account from {path}: {e}") from e
    app = firebase_admin.initialize_app(cred, {"projectId": cred.project_id})
    logger.info("[FCM] Firebase Admin SDK initialized (project=%s)", cred.project_id)
    return app


def build_message(request: PushRequest) -> messaging.Message:
    return messaging.Message(
        token=request.token,
        notification=messaging.Notification(
            title=request.title,
            body=request.body,
        ),
        data=dict(request.data or {}),
        android=messaging.AndroidConfig(
            priority="high",
            notification=messaging.AndroidNotification(
                click_action=CLICK_ACTION,
                sound="default",
                channel_id=request.channel_id,
            ),
        ),
    )


class FcmSender:
    """
    Sends one push per call. firebase-admin is synchronous, so the call runs
    in a worker thread to keep the event loop free.
    """

    def __init__(self, app: Optional[firebase_admin.App] = None, dry_run: bool = False):
        self.app = app
        self.dry_run = dry_run

    async def send(self, request: PushRequest) -> DeliveryResult:
        try:
            message = build_message(request)
            message_id = await asyncio.to_thread(
                messaging.send, message, dry_run=self.dry_run, app=self.app
            )
        except firebase_exceptions.FirebaseError as e:
            logger.debug("[FCM] provider rejected message code=%s", getattr(e, "code", None))
            return DeliveryResult.failure(str(e))
        except ValueError as e:
            # malformed token / payload rejected client-side by the SDK
            return DeliveryResult.failure(str(e))
        return DeliveryResult.success(message_id)
