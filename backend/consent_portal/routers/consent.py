from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from consent_portal.config import settings
from consent_portal.database import get_db
from consent_portal.dependencies import Operator, get_resolver, get_workflow, require_operator
from consent_portal.models.consent import ConsentDocument, ConsentRecord, ConsentStatus
from consent_portal.schemas.consent import (
    ConsentDocumentListResponse,
    ConsentDocumentResponse,
    ConsentDocumentSummary,
    ConsentRecordListResponse,
    ConsentRecordWithEntity,
    ConsentRequestCreate,
    ConsentRequestResponse,
    ConsentSubmitData,
    ConsentSubmitRequest,
    ConsentSubmitResponse,
    ConsentViewData,
    ConsentViewDocument,
    ConsentViewEntity,
    ConsentViewResponse,
    PaginationResponse,
    RecipientConsentRecord,
    RecipientConsentRecordListResponse,
    ResendRequest,
    ResendResponse,
)
from consent_portal.services import listing_service
from consent_portal.services.consent_service import ConsentWorkflow, parse_recipient_type
from consent_portal.services.listing_service import Pagination
from consent_portal.services.recipient_service import RecipientResolver
from consent_portal.utils.network import extract_client_ip

router = APIRouter(
    prefix="/consent",
    tags=["consent"],
    dependencies=[Depends(require_operator)],
)

public_router = APIRouter(prefix="/consent", tags=["consent-public"])


def _document_to_response(doc: ConsentDocument) -> ConsentDocumentResponse:
    return ConsentDocumentResponse(
        id=doc.id,
        file_name=doc.file_name,
        file_path=doc.file_path,
        uploaded_by=doc.uploaded_by,
        version=doc.version,
        is_active=doc.is_active,
        created_at=doc.created_at,
        updated_at=doc.updated_at,
    )


def _record_fields(record: ConsentRecord) -> dict:
    return {
        "id": record.id,
        "document_id": record.document_id,
        "recipient_type": record.recipient_type,
        "recipient_id": record.recipient_id,
        "consent_token": record.consent_token,
        "status": record.status,
        "sent_at": record.sent_at,
        "completed_at": record.completed_at,
        "consented_name": record.consented_name,
        "ip_address": record.ip_address,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }


def _pagination_to_response(p: Pagination) -> PaginationResponse:
    return PaginationResponse(
        page=p.page,
        limit=p.limit,
        total=p.total,
        total_filtered=p.total_filtered,
        total_pages=p.total_pages,
        has_next_page=p.has_next_page,
        has_prev_page=p.has_prev_page,
    )


def _parse_day(value: str | None) -> date | None:
    if not value or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid dateFilter. Expected YYYY-MM-DD") from None


def _parse_status(value: str | None) -> ConsentStatus | None:
    if not value or not value.strip():
        return None
    try:
        return ConsentStatus(value.strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in ConsentStatus)
        raise HTTPException(status_code=400, detail=f"Invalid statusFilter. Must be one of: {allowed}") from None


def _parse_active(value: str | None) -> bool | None:
    if not value or not value.strip():
        return None
    normalized = value.strip().lower()
    if normalized not in ("active", "inactive"):
        raise HTTPException(status_code=400, detail="Invalid statusFilter. Must be 'active' or 'inactive'")
    return normalized == "active"


def _parse_type(value: str | None) -> str | None:
    if not value or not value.strip():
        return None
    return parse_recipient_type(value).value


def _page_size(limit: int) -> int:
    return min(limit, settings.max_page_size)


@router.get("/documents", response_model=ConsentDocumentListResponse)
async def list_consent_documents(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: str | None = None,
    status_filter: str | None = Query(None, alias="statusFilter"),
    recipient_type_filter: str | None = Query(None, alias="recipientTypeFilter"),
    date_filter: str | None = Query(None, alias="dateFilter"),
    db: Session = Depends(get_db),
):
    result = listing_service.list_documents(
        db,
        search_term=search,
        active=_parse_active(status_filter),
        created_on=_parse_day(date_filter),
        recipient_type=_parse_type(recipient_type_filter),
        page=page,
        limit=_page_size(limit),
    )
    documents = [
        ConsentDocumentSummary(
            **_document_to_response(s.document).model_dump(),
            recipient_type=s.recipient_type,
            total_recipients=s.total_recipients,
            completed_recipients=s.completed_recipients,
        )
        for s in result.items
    ]
    return ConsentDocumentListResponse(
        documents=documents,
        pagination=_pagination_to_response(result.pagination),
    )


@router.get("/records/{document_id}", response_model=ConsentRecordListResponse)
async def list_consent_records(
    document_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: str | None = None,
    status_filter: str | None = Query(None, alias="statusFilter"),
    type_filter: str | None = Query(None, alias="typeFilter"),
    name_filter: str | None = Query(None, alias="nameFilter"),
    date_filter: str | None = Query(None, alias="dateFilter"),
    db: Session = Depends(get_db),
    resolver: RecipientResolver = Depends(get_resolver),
):
    result = listing_service.list_records(
        db,
        document_id,
        resolver,
        search_term=search,
        status=_parse_status(status_filter),
        recipient_type=_parse_type(type_filter),
        name=name_filter,
        sent_on=_parse_day(date_filter),
        page=page,
        limit=_page_size(limit),
    )
    records = [
        ConsentRecordWithEntity(
            **_record_fields(item.record),
            entity_name=item.entity_name,
            entity_email=item.entity_email,
        )
        for item in result.items
    ]
    return ConsentRecordListResponse(
        document=_document_to_response(result.document),
        records=records,
        pagination=_pagination_to_response(result.pagination),
    )


@router.get("/entity-records/{recipient_id}", response_model=RecipientConsentRecordListResponse)
async def list_recipient_consent_records(
    recipient_id: str,
    recipient_type: str = Query("jobseeker", alias="recipientType"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: str | None = None,
    status_filter: str | None = Query(None, alias="statusFilter"),
    db: Session = Depends(get_db),
):
    result = listing_service.list_recipient_records(
        db,
        parse_recipient_type(recipient_type).value,
        recipient_id,
        search_term=search,
        status=_parse_status(status_filter),
        page=page,
        limit=_page_size(limit),
    )
    records = [
        RecipientConsentRecord(**_record_fields(r), document=_document_to_response(r.document))
        for r in result.items
    ]
    return RecipientConsentRecordListResponse(
        records=records,
        pagination=_pagination_to_response(result.pagination),
    )


@router.post("/request", response_model=ConsentRequestResponse, status_code=201)
async def create_consent_request(
    req: ConsentRequestCreate,
    operator: Operator = Depends(require_operator),
    workflow: ConsentWorkflow = Depends(get_workflow),
):
    result = workflow.create_request(
        file_name=req.file_name,
        file_path=req.file_path,
        recipient_ids=req.recipient_ids,
        recipient_type=req.recipient_type,
        uploaded_by=operator.id,
    )
    return ConsentRequestResponse(
        message="Consent request created successfully",
        document=_document_to_response(result.document),
        record_count=result.record_count,
    )


@router.post("/resend", response_model=ResendResponse)
async def resend_consent_emails(req: ResendRequest, workflow: ConsentWorkflow = Depends(get_workflow)):
    result = workflow.resend(req.record_ids)
    return ResendResponse(
        message=f"Successfully resent {len(result.resent)} consent emails",
        resent_count=len(result.resent),
        skipped_ids=result.skipped,
    )


@router.post("/documents/{document_id}/deactivate", response_model=ConsentDocumentResponse)
async def deactivate_consent_document(document_id: str, workflow: ConsentWorkflow = Depends(get_workflow)):
    """Permanently disable viewing and signing for every record of this document."""
    return _document_to_response(workflow.deactivate_document(document_id))


@public_router.get("/view", response_model=ConsentViewResponse)
async def view_consent(token: str | None = None, workflow: ConsentWorkflow = Depends(get_workflow)):
    view = workflow.view(token)
    record, document, recipient = view.record, view.document, view.recipient
    return ConsentViewResponse(
        data=ConsentViewData(
            record_id=record.id,
            status=record.status,
            completed_at=record.completed_at,
            consented_name=record.consented_name,
            document=ConsentViewDocument(
                id=document.id,
                file_name=document.file_name,
                file_path=document.file_path,
                version=document.version,
                created_at=document.created_at,
            ),
            entity=ConsentViewEntity(
                name=recipient.display_name if recipient else "Unknown",
                email=(recipient.contact_address or "") if recipient else "",
                type=record.recipient_type,
            ),
        )
    )


@public_router.post("/submit", response_model=ConsentSubmitResponse)
async def submit_consent(
    req: ConsentSubmitRequest,
    request: Request,
    workflow: ConsentWorkflow = Depends(get_workflow),
):
    client_ip = extract_client_ip(request.headers, request.client.host if request.client else None)
    record = workflow.submit(req.token, req.consented_name, client_ip)
    return ConsentSubmitResponse(
        message="Consent recorded successfully",
        data=ConsentSubmitData(
            record_id=record.id,
            completed_at=record.completed_at,
            consented_name=record.consented_name,
        ),
    )
