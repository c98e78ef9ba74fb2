"""
Custom Exceptions for the WhatsApp Inbox Application.

Raised by services and repositories; API endpoints translate them into
HTTP responses (404 / 409 / 400).
"""
from typing import Optional


class EntityNotFoundError(Exception):
    """
    Raised when a requested entity does not exist in the database.
    """
    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.message = f"{entity_type} {entity_id} not found."
        super().__init__(self.message)


class DuplicateEntityError(Exception):
    """
    Raised when creating an entity whose unique key already exists.

    Example:
        POST /api/contacts with a wa_id that is already registered.
    Nothing is written when this is raised.
    """
    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.message = f"{entity_type} {entity_id} already exists."
        super().__init__(self.message)


class ValidationFailedError(Exception):
    """Raised when required fields are missing or invalid on create/send."""
    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        self.message = message
        super().__init__(self.message)


class UnrecognizedPayloadError(Exception):
    """
    Raised when a webhook body is not a WhatsApp Business Account envelope.

    The webhook answers 404 so the sender knows the payload was not for us.
    """
    def __init__(self, payload_object: Optional[str] = None):
        self.payload_object = payload_object
        self.message = f"Unrecognized webhook payload object: {payload_object!r}"
        super().__init__(self.message)


class TransientPersistenceError(Exception):
    """
    Raised after a batch when one or more events hit a database error.

    The rest of the batch is still committed. The webhook answers 500 so the
    provider redelivers; ingestion is idempotent, so the retry is safe.
    """
    def __init__(self, failed_count: int):
        self.failed_count = failed_count
        self.message = f"{failed_count} event(s) failed with a persistence error; retry the delivery."
        super().__init__(self.message)
