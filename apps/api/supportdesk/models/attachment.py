import enum

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Integer, String
from .user import Base


class AttachmentState(str, enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"


# 쿼터 계산 대상 상태 (FAILED 는 제외)
COUNTED_STATES = (AttachmentState.PENDING, AttachmentState.ACTIVE)


class Attachment(Base):
    __tablename__ = "attachments"
    __table_args__ = (
        CheckConstraint(
            "(ticket_id IS NULL) <> (comment_id IS NULL)",
            name="ck_attachments_single_parent",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    ticket_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("tickets.id"), nullable=True, index=True)
    comment_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("ticket_comments.id"), nullable=True, index=True)

    file_name: Mapped[str] = mapped_column(String(255))
    content_type: Mapped[str] = mapped_column(String(255))
    file_size: Mapped[int] = mapped_column(BigInteger)
    object_key: Mapped[str] = mapped_column(String(1024), unique=True)  # object storage key
    state: Mapped[str] = mapped_column(String(20), index=True, default=AttachmentState.PENDING.value)

    uploaded_by: Mapped[int] = mapped_column(ForeignKey("users.id"))

    # timestamps are assigned by the service, not by the database
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), index=True)
    updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True))
