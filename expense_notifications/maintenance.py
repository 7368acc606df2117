import asyncio
import logging

import google.cloud.firestore
from firebase_admin.firestore import FieldFilter

from .tokens import USERS_COLLECTION

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600


async def cleanup_expired_tokens(firestore_db: google.cloud.firestore.Client) -> int:
    """
    Count users that still hold an FCM token.

    Nothing is deleted yet; the job only reports how many tokens exist.
    """
    logger.info("Starting FCM token cleanup...")
    query = firestore_db.collection(USERS_COLLECTION).where(filter=FieldFilter('fcmToken', '!=', None))
    snapshots = await asyncio.to_thread(query.get)
    logger.info(f"Found {len(snapshots)} users with FCM tokens")
    return len(snapshots)


async def run_token_cleanup_schedule(firestore_db: google.cloud.firestore.Client, interval_hours: int) -> None:
    """Run the token cleanup job every `interval_hours` until cancelled."""
    logger.info(f"Token cleanup scheduled every {interval_hours} hours")
    while True:
        await asyncio.sleep(interval_hours * SECONDS_PER_HOUR)
        try:
            await cleanup_expired_tokens(firestore_db)
        except Exception as e:
            logger.error(f"Error during token cleanup: {str(e)}")
