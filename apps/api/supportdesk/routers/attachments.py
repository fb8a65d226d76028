from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.config import get_attachment_config
from ..core.current_user import get_current_user, is_staff
from ..core.storage import get_object_store
from ..db import get_session
from ..models.comment import TicketComment
from ..models.ticket import Ticket
from ..models.user import User
from ..schemas.attachment import AttachmentOut, DownloadUrlOut, UploadUrlIn, UploadUrlOut
from ..services.attachment_repository import AttachmentParent, AttachmentRecord, SqlAttachmentRepository
from ..services.attachment_service import AttachmentService

# NOTE:
# - 파일 바이트는 API 를 거치지 않음: upload-url 로 presigned PUT 발급 -> 클라이언트 직접 업로드 -> confirm
# - 다운로드는 ACTIVE 상태에서만 presigned GET 발급
# - 티켓/댓글 삭제 시 첨부는 services.attachment_service 의 cascade 로 정리

router = APIRouter(tags=["attachments"])


def get_attachment_service(session: Session = Depends(get_session)) -> AttachmentService:
    return AttachmentService(
        SqlAttachmentRepository(session),
        get_object_store(),
        get_attachment_config(),
    )


def get_ticket_or_404(session: Session, ticket_id: int) -> Ticket:
    t = session.get(Ticket, ticket_id)
    if not t:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return t


def get_comment_or_404(session: Session, ticket_id: int, comment_id: int) -> TicketComment:
    c = session.scalar(
        select(TicketComment).where(TicketComment.id == comment_id).where(TicketComment.ticket_id == ticket_id)
    )
    if not c:
        raise HTTPException(status_code=404, detail="Comment not found")
    return c


def assert_ticket_access(user: User, ticket: Ticket) -> None:
    if is_staff(user):
        return
    if ticket.requester_emp_no != user.emp_no:
        raise HTTPException(status_code=403, detail="Forbidden")


def ticket_parent(ticket_id: int, session: Session, user: User) -> AttachmentParent:
    ticket = get_ticket_or_404(session, ticket_id)
    assert_ticket_access(user, ticket)
    return AttachmentParent(ticket_id=ticket.id)


def comment_parent(ticket_id: int, comment_id: int, session: Session, user: User) -> AttachmentParent:
    ticket = get_ticket_or_404(session, ticket_id)
    assert_ticket_access(user, ticket)
    comment = get_comment_or_404(session, ticket_id, comment_id)
    return AttachmentParent(ticket_id=ticket.id, comment_id=comment.id)


def to_out(record: AttachmentRecord, parent: AttachmentParent) -> AttachmentOut:
    return AttachmentOut(
        id=record.id,
        ticket_id=parent.ticket_id,
        comment_id=record.comment_id,
        file_name=record.file_name,
        content_type=record.content_type,
        file_size=record.file_size,
        state=record.state,
        uploaded_by=record.uploaded_by,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _issue_upload(service: AttachmentService, parent: AttachmentParent, payload: UploadUrlIn, user: User) -> UploadUrlOut:
    slot = service.issue_upload_url(
        parent,
        file_name=payload.file_name,
        content_type=payload.content_type,
        file_size=payload.file_size,
        uploaded_by=user.id,
    )
    return UploadUrlOut(attachment_id=slot.attachment_id, upload_url=slot.upload_url, expires_at=slot.expires_at)


def _download(service: AttachmentService, parent: AttachmentParent, attachment_id: int) -> DownloadUrlOut:
    link = service.issue_download_url(parent, attachment_id)
    return DownloadUrlOut(attachment_id=link.attachment_id, download_url=link.download_url, expires_at=link.expires_at)


@router.post("/tickets/{ticket_id}/attachments/upload-url", response_model=UploadUrlOut, status_code=201)
def create_ticket_upload_url(
    ticket_id: int,
    payload: UploadUrlIn,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    service: AttachmentService = Depends(get_attachment_service),
):
    parent = ticket_parent(ticket_id, session, user)
    return _issue_upload(service, parent, payload, user)


@router.post("/tickets/{ticket_id}/attachments/{attachment_id}/confirm", response_model=AttachmentOut)
def confirm_ticket_attachment(
    ticket_id: int,
    attachment_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    service: AttachmentService = Depends(get_attachment_service),
):
    parent = ticket_parent(ticket_id, session, user)
    return to_out(service.confirm(parent, attachment_id), parent)


@router.get("/tickets/{ticket_id}/attachments", response_model=list[AttachmentOut])
def list_ticket_attachments(
    ticket_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    service: AttachmentService = Depends(get_attachment_service),
):
    parent = ticket_parent(ticket_id, session, user)
    return [to_out(r, parent) for r in service.list_attachments(parent)]


@router.get("/tickets/{ticket_id}/attachments/{attachment_id}/download-url", response_model=DownloadUrlOut)
def get_ticket_download_url(
    ticket_id: int,
    attachment_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    service: AttachmentService = Depends(get_attachment_service),
):
    parent = ticket_parent(ticket_id, session, user)
    return _download(service, parent, attachment_id)


@router.delete("/tickets/{ticket_id}/attachments/{attachment_id}", status_code=204)
def delete_ticket_attachment(
    ticket_id: int,
    attachment_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    service: AttachmentService = Depends(get_attachment_service),
):
    parent = ticket_parent(ticket_id, session, user)
    service.delete_attachment(parent, attachment_id)
    return Response(status_code=204)


@router.post(
    "/tickets/{ticket_id}/comments/{comment_id}/attachments/upload-url",
    response_model=UploadUrlOut,
    status_code=201,
)
def create_comment_upload_url(
    ticket_id: int,
    comment_id: int,
    payload: UploadUrlIn,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    service: AttachmentService = Depends(get_attachment_service),
):
    parent = comment_parent(ticket_id, comment_id, session, user)
    return _issue_upload(service, parent, payload, user)


@router.post(
    "/tickets/{ticket_id}/comments/{comment_id}/attachments/{attachment_id}/confirm",
    response_model=AttachmentOut,
)
def confirm_comment_attachment(
    ticket_id: int,
    comment_id: int,
    attachment_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    service: AttachmentService = Depends(get_attachment_service),
):
    parent = comment_parent(ticket_id, comment_id, session, user)
    return to_out(service.confirm(parent, attachment_id), parent)


@router.get("/tickets/{ticket_id}/comments/{comment_id}/attachments", response_model=list[AttachmentOut])
def list_comment_attachments(
    ticket_id: int,
    comment_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    service: AttachmentService = Depends(get_attachment_service),
):
    parent = comment_parent(ticket_id, comment_id, session, user)
    return [to_out(r, parent) for r in service.list_attachments(parent)]


@router.get(
    "/tickets/{ticket_id}/comments/{comment_id}/attachments/{attachment_id}/download-url",
    response_model=DownloadUrlOut,
)
def get_comment_download_url(
    ticket_id: int,
    comment_id: int,
    attachment_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    service: AttachmentService = Depends(get_attachment_service),
):
    parent = comment_parent(ticket_id, comment_id, session, user)
    return _download(service, parent, attachment_id)


@router.delete("/tickets/{ticket_id}/comments/{comment_id}/attachments/{attachment_id}", status_code=204)
def delete_comment_attachment(
    ticket_id: int,
    comment_id: int,
    attachment_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    service: AttachmentService = Depends(get_attachment_service),
):
    parent = comment_parent(ticket_id, comment_id, session, user)
    service.delete_attachment(parent, attachment_id)
    return Response(status_code=204)
