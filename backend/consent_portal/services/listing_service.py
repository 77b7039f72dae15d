"""Read-only administrative listings over consent documents and records.

Filters are small typed predicates combined conjunctively; a ``None``
predicate is simply skipped.
"""
import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Query, Session

from consent_portal.errors import NotFound
from consent_portal.models.consent import ConsentDocument, ConsentRecord, ConsentStatus
from consent_portal.services.recipient_service import RecipientResolver

logger = logging.getLogger("consent_portal.listing")


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@dataclass(frozen=True)
class TextSearch:
    columns: tuple
    term: str

    def clause(self):
        pattern = _like_pattern(self.term.strip())
        return or_(*(column.ilike(pattern, escape="\\") for column in self.columns))


@dataclass(frozen=True)
class ActiveFilter:
    is_active: bool

    def clause(self):
        return ConsentDocument.is_active == self.is_active


@dataclass(frozen=True)
class StatusFilter:
    status: ConsentStatus

    def clause(self):
        return ConsentRecord.status == self.status.value


@dataclass(frozen=True)
class RecipientTypeFilter:
    recipient_type: str

    def clause(self):
        return ConsentRecord.recipient_type == self.recipient_type


@dataclass(frozen=True)
class DayFilter:
    """Matches timestamps on ``day``: inclusive start, exclusive next day."""

    column: object
    day: date

    def clause(self):
        next_day = self.day + timedelta(days=1)
        return (self.column >= self.day.isoformat()) & (self.column < next_day.isoformat())


def search(columns: tuple, term: str | None) -> TextSearch | None:
    if term and term.strip():
        return TextSearch(columns, term)
    return None


def apply_filters(query: Query, predicates) -> Query:
    for predicate in predicates:
        if predicate is not None:
            query = query.filter(predicate.clause())
    return query


@dataclass
class Pagination:
    page: int
    limit: int
    total: int
    total_filtered: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_filtered / self.limit) if self.limit else 0

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1


@dataclass
class DocumentSummary:
    document: ConsentDocument
    recipient_type: str | None
    total_recipients: int
    completed_recipients: int


@dataclass
class DocumentPage:
    items: list[DocumentSummary]
    pagination: Pagination


@dataclass
class RecordSummary:
    record: ConsentRecord
    entity_name: str
    entity_email: str


@dataclass
class RecordPage:
    document: ConsentDocument
    items: list[RecordSummary]
    pagination: Pagination


@dataclass
class RecipientRecordPage:
    items: list[ConsentRecord]
    pagination: Pagination


def _offset(page: int, limit: int) -> int:
    return (page - 1) * limit


def _document_stats(db: Session, document_ids: list[str]) -> dict[str, tuple[str | None, int, int]]:
    if not document_ids:
        return {}
    completed = func.sum(case((ConsentRecord.status == ConsentStatus.COMPLETED.value, 1), else_=0))
    rows = (
        db.query(
            ConsentRecord.document_id,
            func.min(ConsentRecord.recipient_type),
            func.count(ConsentRecord.id),
            completed,
        )
        .filter(ConsentRecord.document_id.in_(document_ids))
        .group_by(ConsentRecord.document_id)
        .all()
    )
    return {doc_id: (rtype, int(total), int(done or 0)) for doc_id, rtype, total, done in rows}


def _summarise(db: Session, documents: list[ConsentDocument]) -> list[DocumentSummary]:
    stats = _document_stats(db, [d.id for d in documents])
    summaries = []
    for doc in documents:
        rtype, total, done = stats.get(doc.id, (None, 0, 0))
        summaries.append(DocumentSummary(doc, rtype, total, done))
    return summaries


def list_documents(
    db: Session,
    *,
    search_term: str | None = None,
    active: bool | None = None,
    created_on: date | None = None,
    recipient_type: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> DocumentPage:
    predicates = [
        search((ConsentDocument.file_name, ConsentDocument.file_path), search_term),
        ActiveFilter(active) if active is not None else None,
        DayFilter(ConsentDocument.created_at, created_on) if created_on else None,
    ]
    total = db.query(func.count(ConsentDocument.id)).scalar()
    query = apply_filters(db.query(ConsentDocument), predicates).order_by(
        ConsentDocument.created_at.desc(), ConsentDocument.id
    )

    if not recipient_type:
        total_filtered = query.count()
        documents = query.offset(_offset(page, limit)).limit(limit).all()
        return DocumentPage(_summarise(db, documents), Pagination(page, limit, total, total_filtered))

    # The recipient type is derived from each document's records, so this
    # filter runs after the fetch and pagination is applied to its output.
    summaries = [s for s in _summarise(db, query.all()) if s.recipient_type == recipient_type]
    start = _offset(page, limit)
    return DocumentPage(summaries[start:start + limit], Pagination(page, limit, total, len(summaries)))


def list_records(
    db: Session,
    document_id: str,
    resolver: RecipientResolver,
    *,
    search_term: str | None = None,
    status: ConsentStatus | None = None,
    recipient_type: str | None = None,
    name: str | None = None,
    sent_on: date | None = None,
    page: int = 1,
    limit: int = 10,
) -> RecordPage:
    document = db.get(ConsentDocument, document_id)
    if document is None:
        raise NotFound("Consent document not found")

    predicates = [
        search((ConsentRecord.consented_name,), search_term),
        StatusFilter(status) if status else None,
        RecipientTypeFilter(recipient_type) if recipient_type else None,
        search((ConsentRecord.consented_name,), name),
        DayFilter(ConsentRecord.sent_at, sent_on) if sent_on else None,
    ]
    base = db.query(ConsentRecord).filter(ConsentRecord.document_id == document_id)
    total = base.count()
    query = apply_filters(base, predicates)
    total_filtered = query.count()
    records = (
        query.order_by(ConsentRecord.sent_at.desc(), ConsentRecord.id)
        .offset(_offset(page, limit))
        .limit(limit)
        .all()
    )

    items = []
    for record in records:
        entity_name, entity_email = "Unknown", ""
        try:
            recipient = resolver.resolve(record.recipient_type, record.recipient_id)
        except Exception:
            logger.exception("Error fetching recipient details for record %s", record.id)
            recipient = None
        if recipient:
            entity_name = recipient.display_name
            entity_email = recipient.contact_address or ""
        items.append(RecordSummary(record, entity_name, entity_email))

    return RecordPage(document, items, Pagination(page, limit, total, total_filtered))


def list_recipient_records(
    db: Session,
    recipient_type: str,
    recipient_id: str,
    *,
    search_term: str | None = None,
    status: ConsentStatus | None = None,
    page: int = 1,
    limit: int = 10,
) -> RecipientRecordPage:
    base = (
        db.query(ConsentRecord)
        .join(ConsentDocument, ConsentRecord.document_id == ConsentDocument.id)
        .filter(ConsentRecord.recipient_id == recipient_id, ConsentRecord.recipient_type == recipient_type)
    )
    total = base.count()
    query = apply_filters(base, [
        search((ConsentDocument.file_name, ConsentRecord.consented_name), search_term),
        StatusFilter(status) if status else None,
    ])
    total_filtered = query.count()
    records = (
        query.order_by(ConsentRecord.sent_at.desc(), ConsentRecord.id)
        .offset(_offset(page, limit))
        .limit(limit)
        .all()
    )
    return RecipientRecordPage(records, Pagination(page, limit, total, total_filtered))
