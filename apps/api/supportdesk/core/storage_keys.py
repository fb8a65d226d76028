from __future__ import annotations

import re

DEFAULT_FILE_NAME = "file"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def normalize_content_type(content_type: str | None) -> str:
    # "text/plain; charset=utf-8" -> "text/plain"
    if not content_type or not content_type.strip():
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def _basename(filename: str) -> str:
    # 클라이언트가 보낸 경로(../, C:\ 등)는 마지막 구성요소만 사용
    return re.split(r"[/\\]", filename)[-1]


def _truncate_keeping_extension(name: str, max_length: int) -> str:
    ext_index = name.rfind(".")
    if ext_index <= 0 or ext_index >= len(name) - 1:
        return name[:max_length]
    ext = name[ext_index:]
    max_base = max_length - len(ext)
    if max_base <= 0:
        return name[:max_length]
    return name[:max_base] + ext


def sanitize_file_name(filename: str | None, *, max_length: int) -> str:
    """Reduce a client-supplied file name to a safe display/key component.

    Path components are dropped, anything outside ``[A-Za-z0-9._-]`` becomes
    ``_`` (whitespace included) and an empty or blank result falls back to
    ``"file"``. Names longer than ``max_length`` are cut to exactly
    ``max_length`` characters, keeping the extension when it fits.
    """
    base = _basename(filename or "")
    if not base.strip():
        base = DEFAULT_FILE_NAME
    sanitized = _UNSAFE_CHARS.sub("_", base)
    if not sanitized.strip("."):
        # "." / ".." 는 키 경로를 깨뜨리므로 기본 이름으로 대체
        sanitized = DEFAULT_FILE_NAME
    if len(sanitized) <= max_length:
        return sanitized
    return _truncate_keeping_extension(sanitized, max_length)


def ticket_attachment_key(*, ticket_id: int, attachment_id: int, file_name: str) -> str:
    return f"tickets/{ticket_id}/attachments/{attachment_id}/{file_name}"


def comment_attachment_key(*, ticket_id: int, comment_id: int, attachment_id: int, file_name: str) -> str:
    return f"tickets/{ticket_id}/comments/{comment_id}/attachments/{attachment_id}/{file_name}"
