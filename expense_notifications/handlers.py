import asyncio
import logging
import traceback
from typing import Callable, List, Optional

import firebase_admin
import google.cloud.firestore

from .dispatcher import Dispatcher
from .payloads import build_added_payload, build_deleted_payload, build_edited_payload, build_messages
from .reconciler import TokenReconciler
from .recipients import has_significant_change, resolve_recipients
from .schemas import (
    ExpenseCreated,
    ExpenseDeleted,
    ExpenseEvent,
    ExpenseUpdated,
    Group,
    MutationKind,
    NotificationPayload,
    NotificationResult,
    PreferenceKey,
    ResultStatus,
)
from .tokens import TokenGatherer

logger = logging.getLogger(__name__)

GROUPS_COLLECTION = 'groups'


class ExpenseNotificationHandler:
    """
    Turns expense mutation events into push notifications for group members.

    Every handler returns a NotificationResult and never raises: failures are
    logged and reported as a `failed` result so the event source does not
    redeliver the event.
    """

    def __init__(self,
                 firestore_db: google.cloud.firestore.Client,
                 app: Optional[firebase_admin.App] = None,
                 dispatcher: Optional[Dispatcher] = None):
        self.firestore_db = firestore_db
        self.gatherer = TokenGatherer(firestore_db)
        self.dispatcher = dispatcher or Dispatcher(app)
        self.reconciler = TokenReconciler(firestore_db)
        logger.info("ExpenseNotificationHandler initialized")

    async def handle(self, event: ExpenseEvent) -> NotificationResult:
        """Route an event to the handler for its mutation kind."""
        if event.kind == MutationKind.CREATE:
            return await self.on_expense_created(event)
        if event.kind == MutationKind.UPDATE:
            return await self.on_expense_updated(event)
        return await self.on_expense_deleted(event)

    async def on_expense_created(self, event: ExpenseCreated) -> NotificationResult:
        expense = event.after
        logger.info(f"New expense created: {event.expenseId} by user: {expense.paidBy}")
        try:
            group = await self._get_group(expense.groupId)
            if group is None:
                return NotificationResult.skipped("group_not_found")

            actor_name = await self.gatherer.get_display_name(expense.paidBy)
            recipient_ids = resolve_recipients(group.memberIds, expense.paidBy)

            return await self._notify(
                recipient_ids,
                PreferenceKey.EXPENSE_ADDED,
                lambda: build_added_payload(event.expenseId, expense, group, actor_name),
            )
        except Exception as e:
            logger.error(f"Error sending expense notification: {str(e)}")
            logger.error(traceback.format_exc())
            return NotificationResult.failed(str(e))

    async def on_expense_updated(self, event: ExpenseUpdated) -> NotificationResult:
        if not has_significant_change(event.before, event.after):
            logger.info(f"No significant changes in expense: {event.expenseId}")
            return NotificationResult.skipped("insignificant_change")

        expense = event.after
        logger.info(f"Expense edited: {event.expenseId}")
        try:
            group = await self._get_group(expense.groupId)
            if group is None:
                return NotificationResult.skipped("group_not_found")

            # The payer is treated as the editor
            editor_name = await self.gatherer.get_display_name(expense.paidBy)
            recipient_ids = resolve_recipients(group.memberIds, expense.paidBy)

            return await self._notify(
                recipient_ids,
                PreferenceKey.EXPENSE_EDITED,
                lambda: build_edited_payload(event.expenseId, expense, group, editor_name),
            )
        except Exception as e:
            logger.error(f"Error sending expense edit notification: {str(e)}")
            logger.error(traceback.format_exc())
            return NotificationResult.failed(str(e))

    async def on_expense_deleted(self, event: ExpenseDeleted) -> NotificationResult:
        expense = event.before
        logger.info(f"Expense deleted: {event.expenseId}")
        try:
            group = await self._get_group(expense.groupId)
            if group is None:
                return NotificationResult.skipped("group_not_found")

            # Deletes notify every member, the actor included
            recipient_ids = resolve_recipients(group.memberIds)

            return await self._notify(
                recipient_ids,
                PreferenceKey.EXPENSE_DELETED,
                lambda: build_deleted_payload(expense, group),
            )
        except Exception as e:
            logger.error(f"Error sending expense delete notification: {str(e)}")
            logger.error(traceback.format_exc())
            return NotificationResult.failed(str(e))

    async def _get_group(self, group_id: str) -> Optional[Group]:
        snapshot = await asyncio.to_thread(
            self.firestore_db.collection(GROUPS_COLLECTION).document(group_id).get
        )
        if not snapshot.exists:
            logger.info(f"Group not found: {group_id}")
            return None
        return Group.model_validate({**snapshot.to_dict(), 'id': group_id})

    async def _notify(self,
                      recipient_ids: List[str],
                      preference_key: PreferenceKey,
                      build_payload: Callable[[], NotificationPayload]) -> NotificationResult:
        if not recipient_ids:
            logger.info("No recipients to notify")
            return NotificationResult.skipped("no_recipients")

        logger.info(f"Recipients: {len(recipient_ids)}")

        tokens = await self.gatherer.gather(recipient_ids, preference_key)
        if not tokens:
            logger.info("No valid FCM tokens found")
            return NotificationResult.skipped("no_tokens", recipients=len(recipient_ids))

        messages = build_messages(build_payload(), tokens)
        results = await self.dispatcher.dispatch(messages)
        removed = await self.reconciler.reconcile(tokens, results)

        success_count = sum(1 for r in results if r.success)
        return NotificationResult(
            status=ResultStatus.SENT,
            recipients=len(recipient_ids),
            successCount=success_count,
            failureCount=len(results) - success_count,
            tokensRemoved=removed,
        )
