import asyncio
import logging
from typing import Any, Dict, Optional

import google.cloud.firestore

from .dispatcher import Dispatcher
from .payloads import build_message, build_test_payload
from .schemas import User
from .tokens import USERS_COLLECTION

logger = logging.getLogger(__name__)


class CallableError(Exception):
    """Typed error surfaced to callers of a synchronous endpoint."""

    UNAUTHENTICATED = "unauthenticated"
    NOT_FOUND = "not-found"
    INTERNAL = "internal"

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


async def send_test_notification(firestore_db: google.cloud.firestore.Client,
                                 dispatcher: Dispatcher,
                                 uid: Optional[str]) -> Dict[str, Any]:
    """
    Send a test push notification to the caller's own device.

    Args:
        firestore_db: Firestore client
        dispatcher: Dispatcher used for the single send
        uid: Authenticated caller id, None when unauthenticated

    Returns:
        {"success": True, "message": ...} on success

    Raises:
        CallableError: unauthenticated, not-found or internal
    """
    if not uid:
        raise CallableError(CallableError.UNAUTHENTICATED, "User must be authenticated")

    try:
        snapshot = await asyncio.to_thread(
            firestore_db.collection(USERS_COLLECTION).document(uid).get
        )
        user = User.model_validate({**snapshot.to_dict(), 'id': uid}) if snapshot.exists else None

        if user is None or not user.fcmToken:
            raise CallableError(CallableError.NOT_FOUND, "User FCM token not found")

        await dispatcher.send_one(build_message(build_test_payload(), user.fcmToken))

    except CallableError:
        raise
    except Exception as e:
        logger.error(f"Error sending test notification to {uid}: {str(e)}")
        raise CallableError(CallableError.INTERNAL, "Failed to send test notification")

    return {"success": True, "message": "Test notification sent successfully"}
