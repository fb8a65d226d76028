from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from .settings import Settings, settings as default_settings
from .storage_keys import normalize_content_type


@dataclass(frozen=True)
class AttachmentConfig:
    bucket: str
    max_file_size_bytes: int
    ticket_max_count: int
    comment_max_count: int
    upload_url_ttl: timedelta
    download_url_ttl: timedelta
    max_file_name_length: int
    allowed_mime_types: frozenset[str]
    pending_max_age: timedelta
    reaper_enabled: bool
    reaper_interval: timedelta
    delete_max_attempts: int
    delete_retry_delay_seconds: float

    def __post_init__(self) -> None:
        if not self.bucket:
            raise RuntimeError("Missing object storage bucket")
        for name in (
            "max_file_size_bytes",
            "ticket_max_count",
            "comment_max_count",
            "max_file_name_length",
            "delete_max_attempts",
        ):
            if getattr(self, name) < 1:
                raise RuntimeError(f"Attachment setting {name} must be >= 1")
        for name in ("upload_url_ttl", "download_url_ttl", "pending_max_age", "reaper_interval"):
            if getattr(self, name) <= timedelta(0):
                raise RuntimeError(f"Attachment setting {name} must be positive")
        if not self.allowed_mime_types:
            raise RuntimeError("At least one allowed MIME type is required")
        if self.delete_retry_delay_seconds < 0:
            raise RuntimeError("Attachment setting delete_retry_delay_seconds must be >= 0")

    def is_allowed_content_type(self, normalized: str) -> bool:
        return normalized in self.allowed_mime_types


def _parse_mime_types(raw: str) -> frozenset[str]:
    # allow-set is normalized the same way incoming content types are
    return frozenset(
        normalized
        for normalized in (normalize_content_type(part) for part in raw.split(","))
        if normalized
    )


def get_attachment_config(source: Settings | None = None) -> AttachmentConfig:
    s = source or default_settings
    return AttachmentConfig(
        bucket=(s.OBJECT_STORAGE_BUCKET or "").strip(),
        max_file_size_bytes=s.ATTACHMENT_MAX_FILE_SIZE_BYTES,
        ticket_max_count=s.ATTACHMENT_TICKET_MAX_COUNT,
        comment_max_count=s.ATTACHMENT_COMMENT_MAX_COUNT,
        upload_url_ttl=timedelta(seconds=s.ATTACHMENT_UPLOAD_URL_TTL_SECONDS),
        download_url_ttl=timedelta(seconds=s.ATTACHMENT_DOWNLOAD_URL_TTL_SECONDS),
        max_file_name_length=s.ATTACHMENT_MAX_FILE_NAME_LENGTH,
        allowed_mime_types=_parse_mime_types(s.ATTACHMENT_ALLOWED_MIME_TYPES),
        pending_max_age=timedelta(seconds=s.ATTACHMENT_PENDING_MAX_AGE_SECONDS),
        reaper_enabled=s.ATTACHMENT_REAPER_ENABLED,
        reaper_interval=timedelta(seconds=s.ATTACHMENT_REAPER_INTERVAL_SECONDS),
        delete_max_attempts=s.ATTACHMENT_DELETE_MAX_ATTEMPTS,
        delete_retry_delay_seconds=s.ATTACHMENT_DELETE_RETRY_DELAY_SECONDS,
    )
