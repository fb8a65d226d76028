from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ..db import get_session
from ..core.current_user import get_current_user
from ..models.user import User
from ..services.attachment_service import AttachmentService
from .attachments import assert_ticket_access, get_attachment_service, get_comment_or_404, get_ticket_or_404

router = APIRouter(tags=["comments"])


@router.delete("/tickets/{ticket_id}/comments/{comment_id}", status_code=204)
def delete_comment(
    ticket_id: int,
    comment_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    service: AttachmentService = Depends(get_attachment_service),
):
    ticket = get_ticket_or_404(session, ticket_id)
    assert_ticket_access(user, ticket)
    comment = get_comment_or_404(session, ticket_id, comment_id)

    service.delete_all_for_comment(ticket_id, comment_id)

    session.delete(comment)
    session.commit()
    return Response(status_code=204)
