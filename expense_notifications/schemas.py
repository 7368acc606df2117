from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class PreferenceKey(str, Enum):
    EXPENSE_ADDED = "expenseAdded"
    EXPENSE_EDITED = "expenseEdited"
    EXPENSE_DELETED = "expenseDeleted"


class MutationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class NotificationType(str, Enum):
    EXPENSE_ADDED = "expense_added"
    EXPENSE_EDITED = "expense_edited"
    EXPENSE_DELETED = "expense_deleted"
    TEST = "test"


class Expense(BaseModel):
    """Expense document as stored in `expenses/{expenseId}`"""
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    groupId: str
    paidBy: Optional[str] = None
    amount: Decimal = Decimal("0")
    currency: Optional[str] = None
    description: str = ""
    category: Optional[str] = None
    splitBetween: List[str] = Field(default_factory=list)

    @field_validator("splitBetween", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return [] if value is None else value


class Group(BaseModel):
    """Group document as stored in `groups/{groupId}`"""
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    name: str = ""
    currency: str = ""
    memberIds: List[str] = Field(default_factory=list)

    @field_validator("memberIds", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return [] if value is None else value


class User(BaseModel):
    """User document as stored in `users/{userId}`"""
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    name: Optional[str] = None
    fcmToken: Optional[str] = None
    notificationPreferences: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("notificationPreferences", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return {} if value is None else value

    def is_enabled(self, key: PreferenceKey) -> bool:
        # Only an explicit `false` opts out
        return self.notificationPreferences.get(key.value) is not False


class ExpenseCreated(BaseModel):
    kind: Literal["create"] = "create"
    expenseId: str
    after: Expense


class ExpenseUpdated(BaseModel):
    kind: Literal["update"] = "update"
    expenseId: str
    before: Expense
    after: Expense


class ExpenseDeleted(BaseModel):
    kind: Literal["delete"] = "delete"
    expenseId: str
    before: Expense


ExpenseEvent = Annotated[
    Union[ExpenseCreated, ExpenseUpdated, ExpenseDeleted],
    Field(discriminator="kind"),
]

expense_event_adapter = TypeAdapter(ExpenseEvent)


class TokenRecord(BaseModel):
    """Delivery token admitted for one recipient"""
    token: str
    userId: str
    userName: Optional[str] = None


class NotificationPayload(BaseModel):
    """Notification content shared by every addressed message of an event"""
    type: NotificationType
    title: str
    body: str
    data: Dict[str, str]


class DeliveryResult(BaseModel):
    success: bool
    errorCode: Optional[str] = None
    errorMessage: Optional[str] = None


class ResultStatus(str, Enum):
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


class NotificationResult(BaseModel):
    """Terminal result of one handler invocation"""
    status: ResultStatus
    reason: Optional[str] = None
    recipients: int = 0
    successCount: int = 0
    failureCount: int = 0
    tokensRemoved: int = 0

    @classmethod
    def skipped(cls, reason: str, **kwargs) -> "NotificationResult":
        return cls(status=ResultStatus.SKIPPED, reason=reason, **kwargs)

    @classmethod
    def failed(cls, reason: str) -> "NotificationResult":
        return cls(status=ResultStatus.FAILED, reason=reason)
