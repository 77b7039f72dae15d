from consent_portal.models.consent import ConsentDocument, ConsentRecord, ConsentStatus, RecipientType
from consent_portal.models.recipient import Client, JobseekerProfile

__all__ = [
    "ConsentDocument",
    "ConsentRecord",
    "ConsentStatus",
    "RecipientType",
    "Client",
    "JobseekerProfile",
]
