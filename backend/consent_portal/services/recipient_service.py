import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.orm import Session

from consent_portal.models.consent import RecipientType
from consent_portal.models.recipient import Client, JobseekerProfile

logger = logging.getLogger("consent_portal.recipients")


@dataclass(frozen=True)
class Recipient:
    display_name: str
    contact_address: str | None


class RecipientResolver(Protocol):
    def resolve(self, recipient_type: str, recipient_id: str) -> Recipient | None:
        ...


class SqlRecipientResolver:
    """Reads recipients from the client and jobseeker tables.

    Opens a short-lived session per lookup so it can be used after the
    request session has been closed.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def resolve(self, recipient_type: str, recipient_id: str) -> Recipient | None:
        with self._session_factory() as db:
            if recipient_type == RecipientType.CLIENT.value:
                client = db.get(Client, recipient_id)
                if client:
                    return Recipient(client.company_name, client.email_address1)
            elif recipient_type == RecipientType.JOBSEEKER.value:
                profile = db.get(JobseekerProfile, recipient_id)
                if profile:
                    name = f"{profile.first_name} {profile.last_name}".strip()
                    return Recipient(name, profile.email)
            else:
                logger.warning("No resolver for recipient type %r", recipient_type)
        return None
