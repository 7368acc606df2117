import asyncio
import logging
from typing import Sequence

import google.cloud.firestore
from firebase_admin import firestore
from google.api_core.exceptions import NotFound

from .dispatcher import PERMANENT_ERROR_CODES
from .schemas import DeliveryResult, TokenRecord
from .tokens import USERS_COLLECTION

logger = logging.getLogger(__name__)


class TokenReconciler:
    """Clears FCM tokens that the provider reported as permanently invalid."""

    def __init__(self, firestore_db: google.cloud.firestore.Client):
        self.firestore_db = firestore_db

    async def reconcile(self, tokens: Sequence[TokenRecord], results: Sequence[DeliveryResult]) -> int:
        """
        Remove dead tokens after a dispatch.

        Args:
            tokens: Token records the batch was addressed to
            results: Dispatch results, aligned with `tokens`

        Returns:
            Number of users whose token was cleared
        """
        user_ids = []
        for record, result in zip(tokens, results):
            if result.success:
                continue

            logger.error(f"Error sending to token {record.token} of user {record.userId}: "
                         f"{result.errorCode} {result.errorMessage}")
            if result.errorCode in PERMANENT_ERROR_CODES:
                user_ids.append(record.userId)

        if not user_ids:
            return 0

        # Duplicate group members map to the same document
        user_ids = list(dict.fromkeys(user_ids))

        logger.info(f"Removing invalid tokens: {len(user_ids)}")
        batch = self.firestore_db.batch()
        users_ref = self.firestore_db.collection(USERS_COLLECTION)
        for user_id in user_ids:
            batch.update(users_ref.document(user_id), {'fcmToken': firestore.DELETE_FIELD})

        try:
            await asyncio.to_thread(batch.commit)
        except NotFound as e:
            # The batch is atomic: one deleted user document rejects every update
            logger.warning(f"Skipped token removal, a user document no longer exists: {str(e)}")
            return 0
        logger.info("Invalid tokens removed")
        return len(user_ids)
