import json
import logging
import threading
from typing import Optional

import firebase_admin
import google.cloud.firestore
from firebase_admin import credentials, firestore

from ..config import settings

logger = logging.getLogger(__name__)


class FirebaseHandle:
    """Process-wide Firebase app and Firestore client.

    Created once on first use and never reinitialized afterwards.
    """

    _instance: Optional["FirebaseHandle"] = None
    _lock = threading.Lock()

    def __new__(cls):
        with cls._lock:
            if cls._instance is None:
                instance = super(FirebaseHandle, cls).__new__(cls)
                instance._connect()
                cls._instance = instance
        return cls._instance

    @property
    def app(self) -> firebase_admin.App:
        return self._app

    @property
    def firestore_db(self) -> google.cloud.firestore.Client:
        return self._firestore_db

    def _connect(self) -> None:
        try:
            # Try to get the existing default app
            self._app = firebase_admin.get_app()
            logger.info("Retrieved existing Firebase app")
        except ValueError:
            # Initialize new app if one doesn't exist
            options = {}
            if settings.firebase_project_id:
                options["projectId"] = settings.firebase_project_id
            self._app = firebase_admin.initialize_app(credential=_load_credential(), options=options or None)
            logger.info(f"Initialized Firebase app: {self._app.name}")
        self._firestore_db = firestore.client(self._app)


def _load_credential() -> credentials.Base:
    cert_json = settings.firebase_secret
    if not cert_json:
        logger.info("FIREBASE_SECRET is not set, using application default credentials")
        return credentials.ApplicationDefault()
    cert_dict = json.loads(cert_json)
    # The secret is sometimes stored as a JSON-encoded string
    if isinstance(cert_dict, str):
        cert_dict = json.loads(cert_dict)
    return credentials.Certificate(cert_dict)


def get_firebase() -> FirebaseHandle:
    """Return the shared Firebase handle, initializing it on first call."""
    return FirebaseHandle()
