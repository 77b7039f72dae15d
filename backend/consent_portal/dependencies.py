from collections.abc import Callable
from dataclasses import dataclass

from fastapi import BackgroundTasks, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from consent_portal.config import settings
from consent_portal.database import get_db, get_session_factory
from consent_portal.services.audit_service import AuditTrail
from consent_portal.services.consent_service import ConsentWorkflow
from consent_portal.services.events import EventBus
from consent_portal.services.notification_service import ConsentNotifier, Dispatcher, build_dispatcher
from consent_portal.services.recipient_service import RecipientResolver, SqlRecipientResolver
from consent_portal.utils.security import verify_api_key


@dataclass(frozen=True)
class Operator:
    id: str


async def require_operator(
    authorization: str | None = Header(None),
    x_operator_id: str | None = Header(None),
) -> Operator:
    if not settings.operator_key_hash:
        raise HTTPException(status_code=503, detail="Operator access is not configured")
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    if not verify_api_key(settings.operator_key_hash, authorization[7:]):
        raise HTTPException(status_code=401, detail="Invalid operator key")
    operator_id = (x_operator_id or "").strip() or "operator"
    return Operator(id=operator_id)


def get_dispatcher() -> Dispatcher:
    return build_dispatcher(settings)


def get_resolver(session_factory: Callable[[], Session] = Depends(get_session_factory)) -> RecipientResolver:
    return SqlRecipientResolver(session_factory)


def get_workflow(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    resolver: RecipientResolver = Depends(get_resolver),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> ConsentWorkflow:
    # Subscribers run as background tasks, after the response is sent.
    bus = EventBus(runner=background_tasks.add_task)
    ConsentNotifier(resolver, dispatcher, settings).register(bus)
    AuditTrail().register(bus)
    return ConsentWorkflow(db, bus, resolver, settings)
