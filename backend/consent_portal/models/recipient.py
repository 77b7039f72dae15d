from sqlalchemy import Column, Text
from consent_portal.database import Base


class Client(Base):
    __tablename__ = "clients"

    id = Column(Text, primary_key=True)
    company_name = Column(Text, nullable=False)
    email_address1 = Column(Text)


class JobseekerProfile(Base):
    __tablename__ = "jobseeker_profiles"

    id = Column(Text, primary_key=True)
    first_name = Column(Text, nullable=False)
    last_name = Column(Text, nullable=False)
    email = Column(Text)
