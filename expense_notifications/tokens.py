import asyncio
import logging
from typing import List, Optional, Sequence

import google.cloud.firestore

from .config import settings
from .schemas import PreferenceKey, TokenRecord, User

logger = logging.getLogger(__name__)

USERS_COLLECTION = 'users'


class TokenGatherer:
    """Resolves recipient ids to FCM tokens, honouring notification preferences."""

    def __init__(self, firestore_db: google.cloud.firestore.Client):
        self.firestore_db = firestore_db

    async def fetch_users(self, user_ids: Sequence[str]) -> List[Optional[User]]:
        """
        Fetch user documents concurrently.

        Args:
            user_ids: Ids to look up

        Returns:
            One entry per id, in the same order; None where the document does not exist
        """
        users_ref = self.firestore_db.collection(USERS_COLLECTION)
        snapshots = await asyncio.gather(
            *(asyncio.to_thread(users_ref.document(user_id).get) for user_id in user_ids)
        )

        users = []
        for user_id, snapshot in zip(user_ids, snapshots):
            if snapshot.exists:
                users.append(User.model_validate({**snapshot.to_dict(), 'id': user_id}))
            else:
                users.append(None)
        return users

    async def gather(self, recipient_ids: Sequence[str], preference_key: PreferenceKey) -> List[TokenRecord]:
        """
        Collect the delivery tokens of recipients who accept this notification kind.

        Args:
            recipient_ids: Candidate recipients
            preference_key: Preference consulted for opt-outs

        Returns:
            Token records in recipient order. Tokens are not deduplicated.
        """
        users = await self.fetch_users(recipient_ids)

        valid_tokens = []
        for user_id, user in zip(recipient_ids, users):
            if user is None:
                continue

            if not user.fcmToken:
                logger.info(f"No FCM token for user {user_id}")
                continue

            if not user.is_enabled(preference_key):
                logger.info(f"User {user_id} has disabled {preference_key.value} notifications")
                continue

            valid_tokens.append(TokenRecord(token=user.fcmToken, userId=user_id, userName=user.name))

        logger.info(f"Gathered {len(valid_tokens)} valid tokens from {len(recipient_ids)} recipients")
        return valid_tokens

    async def get_display_name(self, user_id: Optional[str]) -> str:
        """Return the user's name, or the default actor name when it is unknown."""
        if not user_id:
            return settings.default_actor_name

        snapshot = await asyncio.to_thread(
            self.firestore_db.collection(USERS_COLLECTION).document(user_id).get
        )
        if not snapshot.exists:
            return settings.default_actor_name

        user = User.model_validate({**snapshot.to_dict(), 'id': user_id})
        return user.name or settings.default_actor_name
