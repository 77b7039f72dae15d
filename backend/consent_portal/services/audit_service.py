import logging

from consent_portal.services.events import (
    ConsentRecordsResent,
    ConsentRequestCreated,
    ConsentSubmitted,
    EventBus,
)

logger = logging.getLogger("consent_portal.audit")


class AuditTrail:
    """Writes one activity line per committed consent event."""

    def register(self, bus: EventBus) -> None:
        bus.subscribe(ConsentRequestCreated, self.on_request_created)
        bus.subscribe(ConsentRecordsResent, self.on_records_resent)
        bus.subscribe(ConsentSubmitted, self.on_submitted)

    def on_request_created(self, event: ConsentRequestCreated) -> None:
        logger.info(
            "create_consent_request: %s created consent request %r (%s) for %d %s recipient(s)",
            event.uploaded_by, event.document_name, event.document_id,
            len(event.targets), event.recipient_type,
        )

    def on_records_resent(self, event: ConsentRecordsResent) -> None:
        logger.info(
            "resend_consent_request: resent %d consent email(s): %s",
            len(event.targets), ", ".join(t.record_id for t in event.targets),
        )

    def on_submitted(self, event: ConsentSubmitted) -> None:
        logger.info(
            "submit_consent: %r (%s %s) consented to %r v%d (record %s) at %s from %s",
            event.consented_name, event.recipient_type, event.recipient_id,
            event.document_name, event.document_version, event.record_id,
            event.completed_at, event.ip_address,
        )
