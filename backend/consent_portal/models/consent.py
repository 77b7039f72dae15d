import enum

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from consent_portal.database import Base


class RecipientType(str, enum.Enum):
    CLIENT = "client"
    JOBSEEKER = "jobseeker"


class ConsentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class ConsentDocument(Base):
    __tablename__ = "consent_documents"

    id = Column(Text, primary_key=True)
    file_name = Column(Text, nullable=False)
    file_path = Column(Text, nullable=False)
    uploaded_by = Column(Text, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    records = relationship("ConsentRecord", back_populates="document")


class ConsentRecord(Base):
    __tablename__ = "consent_records"

    id = Column(Text, primary_key=True)
    document_id = Column(Text, ForeignKey("consent_documents.id", ondelete="CASCADE"), nullable=False)
    recipient_type = Column(Text, nullable=False)
    recipient_id = Column(Text, nullable=False)
    consent_token = Column(Text, nullable=False, unique=True)
    status = Column(Text, nullable=False, default=ConsentStatus.PENDING.value)
    sent_at = Column(Text, nullable=True)
    completed_at = Column(Text, nullable=True)
    consented_name = Column(Text, nullable=True)
    ip_address = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    document = relationship("ConsentDocument", back_populates="records")
