"""Post-commit events published by the consent workflow.

The workflow publishes an event only after the state change it describes
has been committed. Subscribers (the notifier, the audit trail) never see
an event for a write that was rolled back, and a failing subscriber can
not undo the write.
"""
import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger("consent_portal.events")


@dataclass(frozen=True)
class NotificationTarget:
    record_id: str
    recipient_type: str
    recipient_id: str
    token: str
    document_name: str


@dataclass(frozen=True)
class ConsentRequestCreated:
    document_id: str
    document_name: str
    uploaded_by: str
    recipient_type: str
    targets: tuple[NotificationTarget, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ConsentRecordsResent:
    targets: tuple[NotificationTarget, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ConsentSubmitted:
    record_id: str
    document_id: str
    document_name: str
    document_version: int
    recipient_type: str
    recipient_id: str
    consented_name: str
    completed_at: str
    ip_address: str


Handler = Callable[[object], None]
Runner = Callable[..., None]


def _run_inline(func, *args):
    func(*args)


class EventBus:
    """Routes events to subscribers by event type.

    ``runner`` decides when a handler runs. The default runs it inline;
    the HTTP layer passes ``BackgroundTasks.add_task`` so handlers run
    after the response has been sent.
    """

    def __init__(self, runner: Runner | None = None):
        self._handlers: dict[type, list[Handler]] = defaultdict(list)
        self._runner = runner or _run_inline

    def subscribe(self, event_type: type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event: object) -> None:
        for handler in self._handlers.get(type(event), []):
            self._runner(self._invoke, handler, event)

    @staticmethod
    def _invoke(handler: Handler, event: object) -> None:
        try:
            handler(event)
        except Exception:
            logger.exception("Handler %r failed for %s", handler, type(event).__name__)
