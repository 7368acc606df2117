from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Sequence

from firebase_admin import messaging

from .config import settings
from .schemas import Expense, Group, NotificationPayload, NotificationType, TokenRecord

TWO_PLACES = Decimal("0.01")


def format_amount(amount: Decimal, currency: Optional[str]) -> str:
    """Render an amount with two decimals and a decimal comma, e.g. `EUR 12,50`."""
    rounded = Decimal(amount).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    return f"{currency or ''} {rounded:.2f}".replace(".", ",")


def amount_text(amount: Decimal) -> str:
    """Plain textual amount without trailing zeros, e.g. `12.5`."""
    return format(Decimal(amount).normalize(), "f")


def _string_data(notification_type: NotificationType, **fields: Any) -> Dict[str, str]:
    # FCM data payloads only accept string values
    data = {"type": notification_type.value}
    for key, value in fields.items():
        data[key] = "" if value is None else str(value)
    data["click_action"] = settings.click_action
    return data


def build_added_payload(expense_id: str, expense: Expense, group: Group, actor_name: str) -> NotificationPayload:
    currency = group.currency
    title = f"New expense in {group.name}"
    body = f'{actor_name} paid {format_amount(expense.amount, currency)} for "{expense.description}"'
    return NotificationPayload(
        type=NotificationType.EXPENSE_ADDED,
        title=title,
        body=body,
        data=_string_data(
            NotificationType.EXPENSE_ADDED,
            expenseId=expense_id,
            groupId=expense.groupId,
            groupName=group.name,
            amount=amount_text(expense.amount),
            currency=currency,
            description=expense.description,
            paidBy=expense.paidBy,
            paidByName=actor_name,
        ),
    )


def build_edited_payload(expense_id: str, expense: Expense, group: Group, editor_name: str) -> NotificationPayload:
    return NotificationPayload(
        type=NotificationType.EXPENSE_EDITED,
        title=f"Expense updated in {group.name}",
        body=f'{editor_name} modified "{expense.description}"',
        data=_string_data(
            NotificationType.EXPENSE_EDITED,
            expenseId=expense_id,
            groupId=expense.groupId,
            groupName=group.name,
            description=expense.description,
            editorName=editor_name,
        ),
    )


def build_deleted_payload(expense: Expense, group: Group) -> NotificationPayload:
    return NotificationPayload(
        type=NotificationType.EXPENSE_DELETED,
        title=f"Expense deleted in {group.name}",
        body=f'"{expense.description}" was removed from the group',
        data=_string_data(
            NotificationType.EXPENSE_DELETED,
            groupId=expense.groupId,
            groupName=group.name,
            description=expense.description,
        ),
    )


def build_test_payload() -> NotificationPayload:
    return NotificationPayload(
        type=NotificationType.TEST,
        title="Test Notification",
        body="This is a test notification from the expense notification service!",
        data=_string_data(NotificationType.TEST),
    )


def _android_config(payload: NotificationPayload) -> messaging.AndroidConfig:
    if payload.type == NotificationType.EXPENSE_ADDED:
        notification = messaging.AndroidNotification(
            channel_id=settings.android_channel_id,
            priority="high",
            default_sound=True,
            default_vibrate_timings=True,
        )
    else:
        notification = messaging.AndroidNotification(
            channel_id=settings.android_channel_id,
            priority="high",
        )
    return messaging.AndroidConfig(notification=notification)


def _apns_config(payload: NotificationPayload) -> Optional[messaging.APNSConfig]:
    if payload.type != NotificationType.EXPENSE_ADDED:
        return None
    return messaging.APNSConfig(
        payload=messaging.APNSPayload(
            aps=messaging.Aps(
                alert=messaging.ApsAlert(title=payload.title, body=payload.body),
                badge=1,
                sound="default",
            )
        )
    )


def build_message(payload: NotificationPayload, token: str) -> messaging.Message:
    """Address a notification payload to a single device token."""
    if payload.type == NotificationType.TEST:
        android = None
    else:
        android = _android_config(payload)
    return messaging.Message(
        token=token,
        notification=messaging.Notification(title=payload.title, body=payload.body),
        data=dict(payload.data),
        android=android,
        apns=_apns_config(payload),
    )


def build_messages(payload: NotificationPayload, tokens: Sequence[TokenRecord]) -> List[messaging.Message]:
    """Build one addressed message per token record, in the same order."""
    return [build_message(payload, record.token) for record in tokens]
