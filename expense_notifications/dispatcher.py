import asyncio
import logging
from typing import List, Optional, Sequence

import firebase_admin
from firebase_admin import exceptions, messaging

from .config import settings
from .schemas import DeliveryResult

logger = logging.getLogger(__name__)

# Error codes FCM reports for tokens that will never succeed again
TOKEN_NOT_REGISTERED = "registration-token-not-registered"
INVALID_TOKEN = "invalid-registration-token"
PERMANENT_ERROR_CODES = frozenset({TOKEN_NOT_REGISTERED, INVALID_TOKEN})


def error_code_for(error: Optional[Exception]) -> str:
    """Normalize an FCM send exception into a kebab-case error code."""
    if isinstance(error, messaging.UnregisteredError):
        return TOKEN_NOT_REGISTERED
    # INVALID_ARGUMENT also covers payload problems such as oversized messages
    if isinstance(error, exceptions.InvalidArgumentError) and "registration token" in str(error).lower():
        return INVALID_TOKEN
    code = getattr(error, "code", None)
    if not code:
        return "unknown"
    return str(code).lower().replace("_", "-")


class Dispatcher:
    """Sends addressed messages through FCM and reports per-message outcomes."""

    def __init__(self, app: Optional[firebase_admin.App] = None, batch_size: Optional[int] = None):
        self.app = app
        self.batch_size = batch_size or settings.fcm_batch_size

    async def dispatch(self, messages: Sequence[messaging.Message]) -> List[DeliveryResult]:
        """
        Send a batch of messages.

        Args:
            messages: Addressed messages

        Returns:
            One DeliveryResult per message, in input order
        """
        results = []
        for i in range(0, len(messages), self.batch_size):
            chunk = list(messages[i:i + self.batch_size])
            batch_response = await asyncio.to_thread(messaging.send_each, chunk, app=self.app)

            for resp in batch_response.responses:
                if resp.success:
                    results.append(DeliveryResult(success=True))
                else:
                    results.append(DeliveryResult(
                        success=False,
                        errorCode=error_code_for(resp.exception),
                        errorMessage=str(resp.exception),
                    ))

        success_count = sum(1 for r in results if r.success)
        logger.info(f"Notifications sent: {success_count} success, {len(results) - success_count} failed")
        return results

    async def send_one(self, message: messaging.Message) -> str:
        """Send a single message. Errors propagate to the caller."""
        message_id = await asyncio.to_thread(messaging.send, message, app=self.app)
        logger.info(f"Sent message {message_id}")
        return message_id
