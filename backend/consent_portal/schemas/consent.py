from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """snake_case in Python and storage, camelCase on the wire (both accepted on input)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---- administrative ----

class ConsentRequestCreate(CamelModel):
    file_name: str | None = None
    file_path: str | None = None
    recipient_ids: list[str] | None = None
    recipient_type: str | None = None


class ConsentDocumentResponse(CamelModel):
    id: str
    file_name: str
    file_path: str
    uploaded_by: str
    version: int
    is_active: bool
    created_at: str
    updated_at: str


class ConsentRequestResponse(CamelModel):
    success: bool = True
    message: str
    document: ConsentDocumentResponse
    record_count: int


class ConsentDocumentSummary(ConsentDocumentResponse):
    recipient_type: str | None
    total_recipients: int
    completed_recipients: int


class PaginationResponse(CamelModel):
    page: int
    limit: int
    total: int
    total_filtered: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class ConsentDocumentListResponse(CamelModel):
    documents: list[ConsentDocumentSummary]
    pagination: PaginationResponse


class ConsentRecordResponse(CamelModel):
    id: str
    document_id: str
    recipient_type: str
    recipient_id: str
    consent_token: str
    status: str
    sent_at: str | None
    completed_at: str | None
    consented_name: str | None
    ip_address: str | None
    created_at: str
    updated_at: str


class ConsentRecordWithEntity(ConsentRecordResponse):
    entity_name: str
    entity_email: str


class ConsentRecordListResponse(CamelModel):
    document: ConsentDocumentResponse
    records: list[ConsentRecordWithEntity]
    pagination: PaginationResponse


class RecipientConsentRecord(ConsentRecordResponse):
    document: ConsentDocumentResponse


class RecipientConsentRecordListResponse(CamelModel):
    success: bool = True
    records: list[RecipientConsentRecord]
    pagination: PaginationResponse


class ResendRequest(CamelModel):
    record_ids: list[str] | None = None


class ResendResponse(CamelModel):
    success: bool = True
    message: str
    resent_count: int
    skipped_ids: list[str] = []


# ---- public ----

class ConsentViewDocument(CamelModel):
    id: str
    file_name: str
    file_path: str
    version: int
    created_at: str


class ConsentViewEntity(CamelModel):
    name: str
    email: str
    type: str


class ConsentViewData(CamelModel):
    record_id: str
    status: str
    completed_at: str | None
    consented_name: str | None
    document: ConsentViewDocument
    entity: ConsentViewEntity


class ConsentViewResponse(CamelModel):
    success: bool = True
    data: ConsentViewData


class ConsentSubmitRequest(CamelModel):
    token: str | None = None
    consented_name: str | None = None


class ConsentSubmitData(CamelModel):
    record_id: str
    completed_at: str
    consented_name: str


class ConsentSubmitResponse(CamelModel):
    success: bool = True
    message: str
    data: ConsentSubmitData
