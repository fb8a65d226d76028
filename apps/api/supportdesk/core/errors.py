from __future__ import annotations


class AttachmentError(Exception):
    """Base class for attachment lifecycle failures."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AttachmentValidationError(AttachmentError):
    """Rejected input or a state that does not allow the operation."""

    status_code = 400


class AttachmentLimitExceeded(AttachmentValidationError):
    pass


class AttachmentNotFound(AttachmentError):
    status_code = 404

    def __init__(self, attachment_id: int):
        super().__init__(f"Attachment not found: {attachment_id}")
        self.attachment_id = attachment_id


class ObjectStoreError(AttachmentError):
    """Object storage failed in a way that is not a definitive answer.

    Callers may retry; record state is left untouched.
    """

    status_code = 502
