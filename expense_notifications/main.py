import asyncio
import logging
from typing import Annotated, Optional, Union

import google.cloud.firestore
from fastapi import Body, Depends, FastAPI, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth

from .callables import CallableError, send_test_notification
from .config import settings
from .dispatcher import Dispatcher
from .firebase import get_firebase
from .handlers import ExpenseNotificationHandler
from .log import setup_logging
from .maintenance import run_token_cleanup_schedule
from .schemas import ExpenseCreated, ExpenseDeleted, ExpenseUpdated, NotificationResult

setup_logging()

logger = logging.getLogger(__name__)

security = HTTPBearer(scheme_name='Authorization', auto_error=False)

CALLABLE_STATUS_CODES = {
    CallableError.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    CallableError.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    CallableError.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

app = FastAPI(title="Expense Notification Service", version="1.0.0")


def get_firestore_db() -> google.cloud.firestore.Client:
    return get_firebase().firestore_db


def get_dispatcher() -> Dispatcher:
    return Dispatcher(get_firebase().app)


def get_handler(
    firestore_db: Annotated[google.cloud.firestore.Client, Depends(get_firestore_db)],
    dispatcher: Annotated[Dispatcher, Depends(get_dispatcher)],
) -> ExpenseNotificationHandler:
    return ExpenseNotificationHandler(firestore_db, dispatcher=dispatcher)


async def get_caller_uid(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)]
) -> Optional[str]:
    """Resolve the caller's uid from a Firebase ID token, or None if absent or invalid."""
    if credentials is None:
        return None
    try:
        decoded = await asyncio.to_thread(auth.verify_id_token, credentials.credentials, get_firebase().app)
    except (ValueError, auth.InvalidIdTokenError, auth.CertificateFetchError) as e:
        logger.warning(f"Rejected ID token: {str(e)}")
        return None
    return decoded.get('uid')


@app.get("/health")
async def health():
    return {"status": "healthy", "service": settings.service_name}


@app.post("/events/expenses", response_model=NotificationResult)
async def expense_event(
    event: Annotated[Union[ExpenseCreated, ExpenseUpdated, ExpenseDeleted], Body(discriminator="kind")],
    handler: Annotated[ExpenseNotificationHandler, Depends(get_handler)],
):
    """
    Receive an expense change event from the document trigger.

    Always answers 200 so the trigger does not redeliver the event.
    """
    return await handler.handle(event)


@app.post("/sendTestNotification")
async def test_notification(
    uid: Annotated[Optional[str], Depends(get_caller_uid)],
    firestore_db: Annotated[google.cloud.firestore.Client, Depends(get_firestore_db)],
    dispatcher: Annotated[Dispatcher, Depends(get_dispatcher)],
):
    try:
        return await send_test_notification(firestore_db, dispatcher, uid)
    except CallableError as e:
        raise HTTPException(
            status_code=CALLABLE_STATUS_CODES[e.code],
            detail={"status": e.code, "message": e.message},
        )


@app.on_event("startup")
async def startup_event():
    """Start the periodic token cleanup job."""
    app.state.cleanup_task = None
    if not settings.token_cleanup_enabled:
        return
    app.state.cleanup_task = asyncio.create_task(
        run_token_cleanup_schedule(get_firestore_db(), settings.token_cleanup_interval_hours)
    )
    logger.info("Started token cleanup schedule")


@app.on_event("shutdown")
async def shutdown_event():
    task = getattr(app.state, "cleanup_task", None)
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        logger.info("Token cleanup schedule cancelled")
