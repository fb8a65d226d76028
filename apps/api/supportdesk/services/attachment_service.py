from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable
from uuid import uuid4
import logging
import time

from ..core.clock import utcnow
from ..core.config import AttachmentConfig
from ..core.errors import (
    AttachmentLimitExceeded,
    AttachmentNotFound,
    AttachmentValidationError,
    ObjectStoreError,
)
from ..core.storage import ObjectStoreGateway
from ..core.storage_keys import normalize_content_type, sanitize_file_name
from ..models.attachment import COUNTED_STATES, AttachmentState
from .attachment_repository import AttachmentParent, AttachmentRecord, AttachmentRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadSlot:
    attachment_id: int
    upload_url: str
    expires_at: datetime
    record: AttachmentRecord


@dataclass(frozen=True)
class DownloadLink:
    attachment_id: int
    download_url: str
    expires_at: datetime


def delete_object_with_retry(
    store: ObjectStoreGateway,
    bucket: str,
    key: str,
    *,
    max_attempts: int,
    retry_delay_seconds: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Delete ``key``, retrying on storage errors. Returns the attempt that succeeded.

    A missing object already counts as deleted (the gateway reports it as
    success). After ``max_attempts`` failures the last ``ObjectStoreError``
    is re-raised.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            store.delete(bucket, key)
            return attempt
        except ObjectStoreError as exc:
            if attempt >= max_attempts:
                logger.warning("object delete gave up: key=%s attempts=%d error=%s", key, attempt, exc)
                raise
            logger.warning(
                "object delete failed (attempt %d/%d): key=%s error=%s", attempt, max_attempts, key, exc
            )
            if retry_delay_seconds > 0:
                sleep(retry_delay_seconds * attempt)


class AttachmentService:
    def __init__(
        self,
        repository: AttachmentRepository,
        object_store: ObjectStoreGateway,
        config: AttachmentConfig,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.repository = repository
        self.object_store = object_store
        self.config = config
        self._clock = clock
        self._sleep = sleep

    def validate_upload(self, *, content_type: str, file_size: int) -> str:
        """Check size and MIME type; returns the normalized content type."""
        if file_size is None or file_size < 1:
            raise AttachmentValidationError("File size must be positive")
        if file_size > self.config.max_file_size_bytes:
            raise AttachmentValidationError(
                f"File exceeds max size of {self.config.max_file_size_bytes} bytes"
            )
        normalized = normalize_content_type(content_type)
        if not self.config.is_allowed_content_type(normalized):
            raise AttachmentValidationError(f"Content type is not allowed: {content_type}")
        return normalized

    def enforce_limit(self, parent: AttachmentParent) -> None:
        # soft guard: count 와 insert 가 한 트랜잭션이 아니므로 동시 요청 시 1개 초과 가능
        cap = self.config.comment_max_count if parent.is_comment else self.config.ticket_max_count
        existing = self.repository.count_in_states(parent, COUNTED_STATES)
        if existing >= cap:
            raise AttachmentLimitExceeded(f"{parent.label} attachment limit exceeded ({cap})")

    def issue_upload_url(
        self,
        parent: AttachmentParent,
        *,
        file_name: str,
        content_type: str,
        file_size: int,
        uploaded_by: int,
    ) -> UploadSlot:
        normalized = self.validate_upload(content_type=content_type, file_size=file_size)
        self.enforce_limit(parent)

        safe_name = sanitize_file_name(file_name, max_length=self.config.max_file_name_length)
        now = self._clock()
        ticket_id, comment_id = parent.owner_columns()

        # 1) placeholder key 로 저장해 id 확보, 2) id 기반 최종 key 로 갱신
        record = self.repository.add(
            AttachmentRecord(
                id=None,
                ticket_id=ticket_id,
                comment_id=comment_id,
                file_name=safe_name,
                content_type=normalized,
                file_size=file_size,
                object_key=f"pending/{uuid4().hex}",
                state=AttachmentState.PENDING,
                uploaded_by=uploaded_by,
                created_at=now,
                updated_at=now,
            )
        )
        record = self.repository.save(
            record.with_object_key(parent.object_key(record.id, safe_name), self._clock())
        )

        signed = self.object_store.presign_upload(
            self.config.bucket,
            record.object_key,
            record.content_type,
            record.file_size,
            self.config.upload_url_ttl,
        )
        logger.info(
            "upload slot issued: attachment_id=%s key=%s size=%d", record.id, record.object_key, record.file_size
        )
        return UploadSlot(
            attachment_id=record.id,
            upload_url=signed.url,
            expires_at=signed.expires_at,
            record=record,
        )

    def get_attachment(self, parent: AttachmentParent, attachment_id: int) -> AttachmentRecord:
        record = self.repository.get(attachment_id, parent)
        if record is None:
            raise AttachmentNotFound(attachment_id)
        return record

    def _mark_failed(self, record: AttachmentRecord, reason: str) -> AttachmentRecord:
        failed = self.repository.save(record.transition(AttachmentState.FAILED, self._clock()))
        logger.info("attachment marked FAILED: attachment_id=%s reason=%s", record.id, reason)
        return failed

    def confirm(self, parent: AttachmentParent, attachment_id: int) -> AttachmentRecord:
        """Verify the uploaded object and move the record out of PENDING.

        ACTIVE is returned as-is without touching storage. A missing object
        or a size mismatch is recorded as FAILED before the error is raised.
        Storage errors other than "not found" propagate and leave the record
        PENDING so the client can confirm again later.
        """
        record = self.get_attachment(parent, attachment_id)
        if record.state is AttachmentState.ACTIVE:
            return record
        if record.state is AttachmentState.FAILED:
            raise AttachmentValidationError("Attachment is in FAILED state and cannot be confirmed")

        probe = self.object_store.probe(self.config.bucket, record.object_key)
        if not probe.exists:
            self._mark_failed(record, "object missing")
            raise AttachmentValidationError("Attachment object was not found in storage")
        if probe.size != record.file_size:
            self._mark_failed(record, f"size {probe.size} != declared {record.file_size}")
            raise AttachmentValidationError("Uploaded file size does not match metadata")

        active = self.repository.save(record.transition(AttachmentState.ACTIVE, self._clock()))
        logger.info("attachment confirmed: attachment_id=%s key=%s", active.id, active.object_key)
        return active

    def issue_download_url(self, parent: AttachmentParent, attachment_id: int) -> DownloadLink:
        record = self.get_attachment(parent, attachment_id)
        if record.state is not AttachmentState.ACTIVE:
            raise AttachmentValidationError("Attachment is not ready for download")
        signed = self.object_store.presign_download(
            self.config.bucket,
            record.object_key,
            record.content_type,
            self.config.download_url_ttl,
        )
        return DownloadLink(attachment_id=record.id, download_url=signed.url, expires_at=signed.expires_at)

    def list_attachments(self, parent: AttachmentParent) -> list[AttachmentRecord]:
        return self.repository.list_for_parent(parent)

    def purge(self, record: AttachmentRecord) -> None:
        """Delete the backing object (with retries), then the metadata row."""
        delete_object_with_retry(
            self.object_store,
            self.config.bucket,
            record.object_key,
            max_attempts=self.config.delete_max_attempts,
            retry_delay_seconds=self.config.delete_retry_delay_seconds,
            sleep=self._sleep,
        )
        self.repository.delete(record.id)

    def delete_attachment(self, parent: AttachmentParent, attachment_id: int) -> None:
        self.purge(self.get_attachment(parent, attachment_id))

    def _purge_all(self, records: list[AttachmentRecord], owner: str) -> int:
        for record in records:
            self.purge(record)
        if records:
            logger.info("attachment cascade: %s removed=%d", owner, len(records))
        return len(records)

    def delete_all_for_ticket(self, ticket_id: int) -> int:
        """Cascade for ticket deletion, including attachments on its comments."""
        return self._purge_all(self.repository.list_for_ticket_tree(ticket_id), f"ticket={ticket_id}")

    def delete_all_for_comment(self, ticket_id: int, comment_id: int) -> int:
        parent = AttachmentParent(ticket_id=ticket_id, comment_id=comment_id)
        return self._purge_all(self.repository.list_for_parent(parent), f"comment={comment_id}")
