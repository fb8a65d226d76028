from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from ..core.errors import AttachmentNotFound
from ..core.storage_keys import comment_attachment_key, ticket_attachment_key
from ..models.attachment import Attachment, AttachmentState
from ..models.comment import TicketComment

# PENDING 에서만 종결 상태로 이동 가능, 종결 상태는 되돌릴 수 없음
_TRANSITIONS = {
    AttachmentState.PENDING: {AttachmentState.ACTIVE, AttachmentState.FAILED},
    AttachmentState.ACTIVE: set(),
    AttachmentState.FAILED: set(),
}


@dataclass(frozen=True)
class AttachmentParent:
    """The ticket, or the comment on a ticket, that owns an attachment."""

    ticket_id: int
    comment_id: int | None = None

    @property
    def is_comment(self) -> bool:
        return self.comment_id is not None

    @property
    def label(self) -> str:
        return "Comment" if self.is_comment else "Ticket"

    def owner_columns(self) -> tuple[int | None, int | None]:
        # exactly one of (ticket_id, comment_id) is stored on the row
        if self.is_comment:
            return None, self.comment_id
        return self.ticket_id, None

    def object_key(self, attachment_id: int, file_name: str) -> str:
        if self.is_comment:
            return comment_attachment_key(
                ticket_id=self.ticket_id,
                comment_id=self.comment_id,
                attachment_id=attachment_id,
                file_name=file_name,
            )
        return ticket_attachment_key(ticket_id=self.ticket_id, attachment_id=attachment_id, file_name=file_name)


@dataclass(frozen=True)
class AttachmentRecord:
    id: int | None
    ticket_id: int | None
    comment_id: int | None
    file_name: str
    content_type: str
    file_size: int
    object_key: str
    state: AttachmentState
    uploaded_by: int
    created_at: datetime
    updated_at: datetime

    def __post_init__(self) -> None:
        if (self.ticket_id is None) == (self.comment_id is None):
            raise ValueError("attachment must belong to exactly one of ticket or comment")

    def transition(self, state: AttachmentState, at: datetime) -> AttachmentRecord:
        if state not in _TRANSITIONS[self.state]:
            raise ValueError(f"illegal attachment transition {self.state.value} -> {state.value}")
        return replace(self, state=state, updated_at=at)

    def with_object_key(self, object_key: str, at: datetime) -> AttachmentRecord:
        return replace(self, object_key=object_key, updated_at=at)


class AttachmentRepository(ABC):
    @abstractmethod
    def add(self, record: AttachmentRecord) -> AttachmentRecord:
        """Insert a new record and return it with its assigned id."""

    @abstractmethod
    def save(self, record: AttachmentRecord) -> AttachmentRecord: ...

    @abstractmethod
    def get(self, attachment_id: int, parent: AttachmentParent) -> AttachmentRecord | None: ...

    @abstractmethod
    def list_for_parent(self, parent: AttachmentParent) -> list[AttachmentRecord]: ...

    @abstractmethod
    def list_for_ticket_tree(self, ticket_id: int) -> list[AttachmentRecord]:
        """Attachments owned by the ticket or by any of its comments."""

    @abstractmethod
    def list_pending_before(self, cutoff: datetime) -> list[AttachmentRecord]: ...

    @abstractmethod
    def count_in_states(self, parent: AttachmentParent, states: Iterable[AttachmentState]) -> int: ...

    @abstractmethod
    def get_current(self, attachment_id: int) -> AttachmentRecord | None:
        """Re-read a record from storage, ignoring anything cached in this unit of work."""

    @abstractmethod
    def delete(self, attachment_id: int) -> None: ...

    @abstractmethod
    def delete_if_pending(self, attachment_id: int) -> bool:
        """Delete the row only while it is still PENDING. Returns whether a row went."""


_COLUMNS = [f.name for f in fields(AttachmentRecord) if f.name not in ("id", "state")]


def _as_utc(value: datetime) -> datetime:
    # timestamps are always written in UTC; drivers without tz support hand them back naive
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(row: Attachment) -> AttachmentRecord:
    values = {name: getattr(row, name) for name in _COLUMNS}
    values["created_at"] = _as_utc(values["created_at"])
    values["updated_at"] = _as_utc(values["updated_at"])
    return AttachmentRecord(id=row.id, state=AttachmentState(row.state), **values)


def _apply(row: Attachment, record: AttachmentRecord) -> None:
    for name in _COLUMNS:
        setattr(row, name, getattr(record, name))
    row.state = record.state.value


class SqlAttachmentRepository(AttachmentRepository):
    """SQLAlchemy-backed store. Every mutation commits on its own."""

    def __init__(self, session: Session):
        self.session = session

    def _parent_clause(self, parent: AttachmentParent):
        if parent.is_comment:
            return Attachment.comment_id == parent.comment_id
        return Attachment.ticket_id == parent.ticket_id

    def add(self, record):
        row = Attachment()
        _apply(row, record)
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return _to_record(row)

    def save(self, record):
        row = self.session.get(Attachment, record.id)
        if row is None:
            raise AttachmentNotFound(record.id)
        _apply(row, record)
        self.session.commit()
        self.session.refresh(row)
        return _to_record(row)

    def get(self, attachment_id, parent):
        stmt = select(Attachment).where(Attachment.id == attachment_id).where(self._parent_clause(parent))
        row = self.session.scalar(stmt)
        return _to_record(row) if row else None

    def list_for_parent(self, parent):
        stmt = (
            select(Attachment)
            .where(self._parent_clause(parent))
            .order_by(Attachment.created_at.asc(), Attachment.id.asc())
        )
        return [_to_record(row) for row in self.session.scalars(stmt).all()]

    def list_for_ticket_tree(self, ticket_id):
        comment_ids = select(TicketComment.id).where(TicketComment.ticket_id == ticket_id)
        stmt = (
            select(Attachment)
            .where(or_(Attachment.ticket_id == ticket_id, Attachment.comment_id.in_(comment_ids)))
            .order_by(Attachment.created_at.asc(), Attachment.id.asc())
        )
        return [_to_record(row) for row in self.session.scalars(stmt).all()]

    def list_pending_before(self, cutoff):
        stmt = (
            select(Attachment)
            .where(Attachment.state == AttachmentState.PENDING.value)
            .where(Attachment.created_at < cutoff)
            .order_by(Attachment.created_at.asc(), Attachment.id.asc())
        )
        return [_to_record(row) for row in self.session.scalars(stmt).all()]

    def count_in_states(self, parent, states):
        stmt = (
            select(func.count(Attachment.id))
            .where(self._parent_clause(parent))
            .where(Attachment.state.in_([s.value for s in states]))
        )
        return int(self.session.scalar(stmt) or 0)

    def get_current(self, attachment_id):
        stmt = (
            select(Attachment)
            .where(Attachment.id == attachment_id)
            .execution_options(populate_existing=True)
        )
        row = self.session.scalar(stmt)
        return _to_record(row) if row else None

    def delete(self, attachment_id):
        self.session.execute(delete(Attachment).where(Attachment.id == attachment_id))
        self.session.commit()

    def delete_if_pending(self, attachment_id):
        result = self.session.execute(
            delete(Attachment)
            .where(Attachment.id == attachment_id)
            .where(Attachment.state == AttachmentState.PENDING.value)
        )
        self.session.commit()
        return result.rowcount > 0
