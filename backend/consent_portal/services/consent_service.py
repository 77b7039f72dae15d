"""Consent workflow engine.

Creates consent requests (one document plus one tokenised record per
recipient), resolves public tokens, performs the one-way pending ->
completed transition and re-sends notifications. The engine is built per
request around an explicit session, event bus and recipient resolver.

State changes are committed before the matching event is published, so
notification and audit subscribers only ever observe durable writes.
"""
import logging
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from consent_portal.config import Settings, settings as default_settings
from consent_portal.errors import (
    AlreadyCompleted,
    DocumentInactive,
    InvalidInput,
    NotFound,
    PersistenceFailure,
    RecipientTypeUnsupported,
)
from consent_portal.models.consent import ConsentDocument, ConsentRecord, ConsentStatus, RecipientType
from consent_portal.services.events import (
    ConsentRecordsResent,
    ConsentRequestCreated,
    ConsentSubmitted,
    EventBus,
    NotificationTarget,
)
from consent_portal.services.recipient_service import Recipient, RecipientResolver
from consent_portal.utils.network import UNKNOWN_ADDRESS
from consent_portal.utils.security import generate_token, is_well_formed_token, tokens_match

logger = logging.getLogger("consent_portal.consent")

INVALID_TOKEN_MESSAGE = "Invalid or expired consent token"
INACTIVE_MESSAGE = "This consent document is no longer active"
ALREADY_COMPLETED_MESSAGE = "Consent has already been provided for this document"


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class CreationResult:
    document: ConsentDocument
    record_count: int


@dataclass
class ConsentView:
    record: ConsentRecord
    document: ConsentDocument
    recipient: Recipient | None


@dataclass
class ResendResult:
    resent: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def parse_recipient_type(value: str | RecipientType | None) -> RecipientType:
    if isinstance(value, RecipientType):
        return value
    try:
        return RecipientType((value or "").strip())
    except ValueError:
        allowed = ", ".join(t.value for t in RecipientType)
        raise RecipientTypeUnsupported(f"Invalid recipient type {value!r}. Must be one of: {allowed}") from None


class ConsentWorkflow:
    def __init__(
        self,
        db: Session,
        events: EventBus,
        resolver: RecipientResolver,
        settings: Settings = default_settings,
    ):
        self.db = db
        self.events = events
        self.resolver = resolver
        self.settings = settings

    # -- creation ---------------------------------------------------------

    def create_request(
        self,
        file_name: str | None,
        file_path: str | None,
        recipient_ids: Sequence[str] | None,
        recipient_type: str | RecipientType | None,
        uploaded_by: str,
    ) -> CreationResult:
        file_name = (file_name or "").strip()
        file_path = (file_path or "").strip()
        if not file_name or not file_path:
            raise InvalidInput("Missing required fields: fileName and filePath")
        ids = self._validate_recipient_ids(recipient_ids)
        rtype = parse_recipient_type(recipient_type)

        now = _now()
        document = ConsentDocument(
            id=str(uuid.uuid4()),
            file_name=file_name,
            file_path=file_path,
            uploaded_by=uploaded_by,
            version=1,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        try:
            self.db.add(document)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Error creating consent document %r", file_name)
            raise PersistenceFailure("Failed to create consent document") from exc

        document_id = document.id
        records = [
            ConsentRecord(
                id=str(uuid.uuid4()),
                document_id=document_id,
                recipient_type=rtype.value,
                recipient_id=recipient_id,
                consent_token=generate_token(),
                status=ConsentStatus.PENDING.value,
                sent_at=now,
                created_at=now,
                updated_at=now,
            )
            for recipient_id in ids
        ]
        try:
            self.db.add_all(records)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Error creating %d consent records for document %s", len(records), document_id)
            self._discard_document(document_id)
            raise PersistenceFailure("Failed to create consent records") from exc

        targets = tuple(self._target(r, document.file_name) for r in records)
        for index, target in enumerate(targets, start=1):
            logger.info(
                "Consent record %d/%d issued for %s %s: %s",
                index, len(targets), target.recipient_type, target.recipient_id, target.record_id,
            )

        self.events.publish(ConsentRequestCreated(
            document_id=document_id,
            document_name=document.file_name,
            uploaded_by=uploaded_by,
            recipient_type=rtype.value,
            targets=targets,
        ))
        return CreationResult(document=document, record_count=len(records))

    def _validate_recipient_ids(self, recipient_ids: Sequence[str] | None) -> list[str]:
        if not recipient_ids or isinstance(recipient_ids, str):
            raise InvalidInput("Recipients must be a non-empty array")
        ids = [str(r).strip() for r in recipient_ids]
        if any(not r for r in ids):
            raise InvalidInput("Recipient ids must not be blank")
        if len(set(ids)) != len(ids):
            raise InvalidInput("Recipient ids must be distinct")
        return ids

    def _discard_document(self, document_id: str) -> None:
        try:
            self.db.execute(delete(ConsentRecord).where(ConsentRecord.document_id == document_id))
            self.db.execute(delete(ConsentDocument).where(ConsentDocument.id == document_id))
            self.db.commit()
            logger.info("Removed consent document %s after failed record creation", document_id)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Cleanup failed: consent document %s may be left without records", document_id)

    # -- public token access ---------------------------------------------

    def view(self, token: str | None) -> ConsentView:
        record = self._find_by_token(token)
        document = record.document
        if not document.is_active:
            logger.info("Consent view refused for record %s: document %s inactive", record.id, document.id)
            raise DocumentInactive(INACTIVE_MESSAGE)

        recipient = self._resolve(record)
        logger.info("Consent link accessed: record %s (%s), document %r", record.id, record.status, document.file_name)
        return ConsentView(record=record, document=document, recipient=recipient)

    def submit(self, token: str | None, consented_name: str | None, ip_address: str | None) -> ConsentRecord:
        record = self._find_by_token(token)
        document = record.document
        if not document.is_active:
            logger.warning("Consent submission refused for record %s: document inactive", record.id)
            raise DocumentInactive(INACTIVE_MESSAGE)
        if record.status == ConsentStatus.COMPLETED.value:
            logger.warning("Consent submission refused for record %s: already completed", record.id)
            raise AlreadyCompleted(ALREADY_COMPLETED_MESSAGE)

        name = (consented_name or "").strip()
        if len(name) < self.settings.min_consented_name_length:
            raise InvalidInput("Please provide a valid full name")

        record_id = record.id
        ip = (ip_address or "").strip() or UNKNOWN_ADDRESS
        now = _now()
        try:
            result = self.db.execute(
                update(ConsentRecord)
                .where(
                    ConsentRecord.id == record_id,
                    ConsentRecord.status == ConsentStatus.PENDING.value,
                )
                .values(
                    status=ConsentStatus.COMPLETED.value,
                    completed_at=now,
                    consented_name=name,
                    ip_address=ip,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            applied = result.rowcount == 1
            if applied:
                self.db.commit()
            else:
                self.db.rollback()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Error recording consent for record %s", record_id)
            raise PersistenceFailure("Failed to record consent") from exc

        if not applied:
            # Lost the race: another request completed this record after our read.
            logger.warning("Concurrent consent submission for record %s rejected", record_id)
            raise AlreadyCompleted(ALREADY_COMPLETED_MESSAGE)

        self.db.refresh(record)
        logger.info("Consent submitted for record %s by %r from %s", record_id, name, ip)
        self.events.publish(ConsentSubmitted(
            record_id=record_id,
            document_id=document.id,
            document_name=document.file_name,
            document_version=document.version,
            recipient_type=record.recipient_type,
            recipient_id=record.recipient_id,
            consented_name=record.consented_name,
            completed_at=record.completed_at,
            ip_address=record.ip_address,
        ))
        return record

    def _find_by_token(self, token: str | None) -> ConsentRecord:
        if token is None or not token.strip():
            raise InvalidInput("Consent token is required")
        token = token.strip()
        if not is_well_formed_token(token):
            logger.info("Rejected malformed consent token")
            raise NotFound(INVALID_TOKEN_MESSAGE)

        record = self.db.query(ConsentRecord).filter(ConsentRecord.consent_token == token).first()
        if record is None or not tokens_match(record.consent_token, token):
            logger.info("Consent token did not match any record")
            raise NotFound(INVALID_TOKEN_MESSAGE)
        return record

    # -- resend -----------------------------------------------------------

    def resend(self, record_ids: Iterable[str] | None) -> ResendResult:
        ids = list(dict.fromkeys(str(i) for i in (record_ids or []) if i))
        if not ids:
            raise InvalidInput("Record IDs must be a non-empty array")

        found = {r.id: r for r in self.db.query(ConsentRecord).filter(ConsentRecord.id.in_(ids)).all()}
        result = ResendResult()
        resendable: list[ConsentRecord] = []
        for record_id in ids:
            record = found.get(record_id)
            if record is None:
                result.skipped.append(record_id)
            elif record.status == ConsentStatus.COMPLETED.value and not self.settings.allow_resend_completed:
                result.skipped.append(record_id)
            else:
                resendable.append(record)

        if result.skipped:
            logger.info("Resend skipped %d record(s): %s", len(result.skipped), ", ".join(result.skipped))
        if not resendable:
            return result

        now = _now()
        for record in resendable:
            record.sent_at = now
            record.updated_at = now
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Error updating sent_at for %d consent records", len(resendable))
            raise PersistenceFailure("Failed to update consent records") from exc

        targets = tuple(self._target(r, r.document.file_name) for r in resendable)
        result.resent = [t.record_id for t in targets]
        self.events.publish(ConsentRecordsResent(targets=targets))
        return result

    # -- administration ---------------------------------------------------

    def deactivate_document(self, document_id: str) -> ConsentDocument:
        document = self.db.get(ConsentDocument, document_id)
        if document is None:
            raise NotFound("Consent document not found")
        if document.is_active:
            document.is_active = False
            document.updated_at = _now()
            try:
                self.db.commit()
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.exception("Error deactivating consent document %s", document_id)
                raise PersistenceFailure("Failed to deactivate consent document") from exc
            self.db.refresh(document)
            logger.info("Consent document %s deactivated", document_id)
        return document

    # -- helpers ----------------------------------------------------------

    def _resolve(self, record: ConsentRecord) -> Recipient | None:
        try:
            return self.resolver.resolve(record.recipient_type, record.recipient_id)
        except Exception:
            logger.exception("Error fetching recipient details for record %s", record.id)
            return None

    @staticmethod
    def _target(record: ConsentRecord, document_name: str) -> NotificationTarget:
        return NotificationTarget(
            record_id=record.id,
            recipient_type=record.recipient_type,
            recipient_id=record.recipient_id,
            token=record.consent_token,
            document_name=document_name,
        )
