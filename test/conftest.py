import copy
from typing import Dict, List, Optional

import pytest
from faker import Faker
from firebase_admin import firestore, messaging
from google.api_core.exceptions import NotFound
from google.cloud.firestore_v1.types import StructuredQuery

from expense_notifications.config import settings

fake = Faker()


class FakeSnapshot:
    def __init__(self, doc_id: str, data: Optional[dict]):
        self.id = doc_id
        self._data = data

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> Optional[dict]:
        return copy.deepcopy(self._data)


class FakeDocument:
    def __init__(self, db: "FakeFirestore", collection: str, doc_id: str):
        self.db = db
        self.collection = collection
        self.id = doc_id

    def get(self) -> FakeSnapshot:
        self.db.reads.append(f"{self.collection}/{self.id}")
        if f"{self.collection}/{self.id}" in self.db.failing_reads:
            raise RuntimeError(f"read failed: {self.collection}/{self.id}")
        return FakeSnapshot(self.id, self.db.data.get(self.collection, {}).get(self.id))

    def _apply(self, fields: dict) -> None:
        doc = self.db.data[self.collection][self.id]
        for key, value in fields.items():
            if value is firestore.DELETE_FIELD:
                doc.pop(key, None)
            else:
                doc[key] = value


class FakeQuery:
    def __init__(self, db: "FakeFirestore", collection: str, field_filter):
        self.db = db
        self.collection = collection
        self.field_filter = field_filter

    def get(self) -> List[FakeSnapshot]:
        # Newer clients turn `!= None` into a unary IS_NOT_NULL filter
        op = self.field_filter.op_string
        assert op in ('!=', StructuredQuery.UnaryFilter.Operator.IS_NOT_NULL)
        field = self.field_filter.field_path
        return [
            FakeSnapshot(doc_id, data)
            for doc_id, data in self.db.data.get(self.collection, {}).items()
            if data.get(field) is not None
        ]


class FakeCollection:
    def __init__(self, db: "FakeFirestore", name: str):
        self.db = db
        self.name = name

    def document(self, doc_id: str) -> FakeDocument:
        return FakeDocument(self.db, self.name, doc_id)

    def where(self, filter=None) -> FakeQuery:
        return FakeQuery(self.db, self.name, filter)


class FakeBatch:
    def __init__(self, db: "FakeFirestore"):
        self.db = db
        self.updates = []

    def update(self, ref: FakeDocument, fields: dict) -> None:
        self.updates.append((ref, fields))

    def commit(self) -> None:
        for ref, _ in self.updates:
            if ref.id not in self.db.data.get(ref.collection, {}):
                raise NotFound(f"No document to update: {ref.collection}/{ref.id}")
        for ref, fields in self.updates:
            ref._apply(fields)
        self.db.commits.append([(ref.id, fields) for ref, fields in self.updates])


class FakeFirestore:
    """In-memory stand-in for the parts of the Firestore client the service uses."""

    def __init__(self):
        self.data: Dict[str, Dict[str, dict]] = {}
        self.reads: List[str] = []
        self.commits: List[list] = []
        self.failing_reads = set()

    def collection(self, name: str) -> FakeCollection:
        return FakeCollection(self, name)

    def batch(self) -> FakeBatch:
        return FakeBatch(self)

    def add_user(self, user_id: str, token: Optional[str] = None, name: Optional[str] = None, **prefs) -> dict:
        user = {'name': name or fake.first_name()}
        if token:
            user['fcmToken'] = token
        if prefs:
            user['notificationPreferences'] = prefs
        self.data.setdefault('users', {})[user_id] = user
        return user

    def add_group(self, group_id: str, member_ids: List[str], name: str = "Trip", currency: str = "EUR") -> dict:
        group = {'name': name, 'currency': currency, 'memberIds': list(member_ids)}
        self.data.setdefault('groups', {})[group_id] = group
        return group

    def user(self, user_id: str) -> dict:
        return self.data['users'][user_id]


class FakeSendResponse:
    def __init__(self, exception: Optional[Exception] = None):
        self.exception = exception
        self.message_id = None if exception else f"projects/test/messages/{fake.uuid4()}"

    @property
    def success(self) -> bool:
        return self.exception is None


class FakeBatchResponse:
    def __init__(self, responses: List[FakeSendResponse]):
        self.responses = responses
        self.success_count = sum(1 for r in responses if r.success)
        self.failure_count = len(responses) - self.success_count


class FakeFCM:
    """Records FCM sends; per-token errors can be configured in `errors`."""

    def __init__(self):
        self.batches: List[List[messaging.Message]] = []
        self.single: List[messaging.Message] = []
        self.errors: Dict[str, Exception] = {}
        self.send_error: Optional[Exception] = None

    @property
    def messages(self) -> List[messaging.Message]:
        return [m for batch in self.batches for m in batch]

    def send_each(self, messages, dry_run=False, app=None) -> FakeBatchResponse:
        self.batches.append(list(messages))
        return FakeBatchResponse([FakeSendResponse(self.errors.get(m.token)) for m in messages])

    def send(self, message, dry_run=False, app=None) -> str:
        if self.send_error is not None:
            raise self.send_error
        self.single.append(message)
        return f"projects/test/messages/{fake.uuid4()}"


@pytest.fixture
def db() -> FakeFirestore:
    return FakeFirestore()


@pytest.fixture
def fcm(monkeypatch) -> FakeFCM:
    fake_fcm = FakeFCM()
    monkeypatch.setattr(messaging, 'send_each', fake_fcm.send_each)
    monkeypatch.setattr(messaging, 'send', fake_fcm.send)
    return fake_fcm


@pytest.fixture(autouse=True)
def no_cleanup_schedule(monkeypatch):
    monkeypatch.setattr(settings, 'token_cleanup_enabled', False)
