"""Error taxonomy for the consent workflow.

Every failure the workflow reports synchronously is a ``ConsentError``
subclass with a stable ``code`` tag and the HTTP status it maps to.
``DispatchError`` belongs to the same family but is only ever raised by
dispatchers and caught per recipient by the notifier.
"""


class ConsentError(Exception):
    status_code = 400
    code = "consent_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(ConsentError):
    status_code = 400
    code = "invalid_input"


class RecipientTypeUnsupported(ConsentError):
    status_code = 400
    code = "recipient_type_unsupported"


class NotFound(ConsentError):
    status_code = 404
    code = "not_found"


class DocumentInactive(ConsentError):
    status_code = 410
    code = "document_inactive"


class AlreadyCompleted(ConsentError):
    status_code = 409
    code = "already_completed"


class PersistenceFailure(ConsentError):
    status_code = 500
    code = "persistence_failure"


class DispatchError(ConsentError):
    status_code = 502
    code = "dispatch_error"
